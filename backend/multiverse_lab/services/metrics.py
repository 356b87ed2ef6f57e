# multiverse_lab/services/metrics.py
from typing import Any, Dict, Optional, Sequence

from multiverse_lab.models.layout import LayoutData, ZoneCategory, used_area

# Rough cost per unit of area, by zone category
ZONE_COST_MULTIPLIERS = {
    ZoneCategory.COMPUTE: 5000.0,
    ZoneCategory.WORKSPACE: 2000.0,
    ZoneCategory.MEETING: 1500.0,
    ZoneCategory.STORAGE: 1000.0,
    ZoneCategory.UTILITY: 3000.0,
    ZoneCategory.ENTRANCE: 500.0,
    ZoneCategory.UNRESOLVED: 0.0,
}
DEFAULT_COST_MULTIPLIER = 1000.0

# Comfortable occupancy band for the safety heuristic
EFFICIENCY_BAND = (0.4, 0.7)
OVERCROWDED_EFFICIENCY = 0.85


def layout_metrics(layout: LayoutData) -> Dict[str, Any]:
    """Area use, cost and safety estimates for a layout (all heuristics, no I/O)."""
    total = layout.total_area
    used = used_area(layout)
    efficiency = min(used / total, 1.0) if total > 0 else 0.0

    estimated_cost = sum(
        max(z.area, 0.0) * ZONE_COST_MULTIPLIERS.get(z.category, DEFAULT_COST_MULTIPLIER)
        for z in layout.zones
    )

    safety = 50
    categories = {z.category for z in layout.zones}
    if ZoneCategory.ENTRANCE in categories:
        safety += 20
    if ZoneCategory.UTILITY in categories:
        safety += 15
    if EFFICIENCY_BAND[0] <= efficiency <= EFFICIENCY_BAND[1]:
        safety += 15
    elif efficiency > OVERCROWDED_EFFICIENCY:
        safety -= 10
    safety = max(0, min(100, safety))

    return {
        "totalArea": total,
        "usedArea": used,
        "efficiency": round(efficiency, 4),
        "estimatedCost": round(estimated_cost, 2),
        "safetyScore": safety,
    }


def fitness_score(violations: Sequence[Any], efficiency_hint: Optional[float] = None) -> float:
    """
    Fitness used to rank universes against each other.

    1 / (1 + violation count), scaled by the model's own efficiency estimate
    (clamped to [0, 1]) when it gave one. Higher is better.
    """
    base = 1.0 / (1 + len(violations))
    if efficiency_hint is None:
        return round(base, 6)
    hint = max(0.0, min(1.0, float(efficiency_hint)))
    return round(base * hint, 6)
