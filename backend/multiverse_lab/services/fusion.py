# multiverse_lab/services/fusion.py
"""
Fusion of two or more universes into one layout.

The three deterministic strategies never call out: the same inputs always
produce the same layout. "compromise" and "innovative" hand the judgement
to the agent adapter and are only reachable through ``fuse_universes``.
"""

import logging
from enum import Enum
from statistics import fmean
from typing import Any, Container, Dict, List, Optional, Sequence

from multiverse_lab.errors import InsufficientInputError
from multiverse_lab.models.layout import LayoutData, Universe, ZoneCategory, ZoneData, copy_layout, copy_zone
from multiverse_lab.services.agent_adapter import LAYOUT_FORMAT, AgentAdapter, PromptContext
from multiverse_lab.services.metrics import fitness_score
from multiverse_lab.services.validator import validate

logger = logging.getLogger(__name__)


class FusionStrategy(str, Enum):
    BEST_OF_EACH = "best-of-each"
    WEIGHTED_MERGE = "weighted-merge"
    CONSERVATIVE_OVERLAP = "conservative-overlap"
    COMPROMISE = "compromise"
    INNOVATIVE = "innovative"

    @property
    def requires_agent(self) -> bool:
        return self in (FusionStrategy.COMPROMISE, FusionStrategy.INNOVATIVE)


STRATEGY_PROMPTS = {
    FusionStrategy.COMPROMISE: "Find the balance point between the universes: keep what they agree on and settle their differences midway.",
    FusionStrategy.INNOVATIVE: "Use the universes as inspiration and create a new design that combines their strongest ideas.",
}


def _check_inputs(universes: Sequence[Universe]):
    if len(universes) < 2:
        raise InsufficientInputError(f"Fusion needs at least 2 universes, got {len(universes)}")


def _zone_order(universes: Sequence[Universe]) -> List[str]:
    order: Dict[str, None] = {}
    for u in universes:
        for zone in u.layout.zones:
            order.setdefault(zone.id, None)
    return list(order)


def _variants(universes: Sequence[Universe], zone_id: str) -> List[tuple]:
    """(universe position, universe, zone) for every universe holding ``zone_id``."""
    out = []
    for pos, u in enumerate(universes):
        zone = next((z for z in u.layout.zones if z.id == zone_id), None)
        if zone is not None:
            out.append((pos, u, zone))
    return out


def _fitness(universe: Universe) -> float:
    if universe.fitness is not None:
        return universe.fitness
    return fitness_score(universe.violations)


def _best_of_each(universes: Sequence[Universe]) -> List[ZoneData]:
    zones = []
    for zone_id in _zone_order(universes):
        # highest fitness, then fewest violations, then earliest universe
        _, _, zone = max(
            _variants(universes, zone_id),
            key=lambda v: (_fitness(v[1]), -len(v[1].violations), -v[0]),
        )
        zones.append(copy_zone(zone))
    return zones


def _union(lists: List[List[str]]) -> List[str]:
    return list(dict.fromkeys(item for items in lists for item in items))


def _weighted_merge(universes: Sequence[Universe]) -> List[ZoneData]:
    zones = []
    for zone_id in _zone_order(universes):
        variants = [zone for _, _, zone in _variants(universes, zone_id)]
        if len(variants) == 1:
            zones.append(copy_zone(variants[0]))
            continue
        first = variants[0]
        zones.append(copy_zone(
            first,
            area=fmean(z.area for z in variants),
            equipment=_union([z.equipment for z in variants]),
            adjacent=_union([z.adjacent for z in variants]),
        ))
    return zones


def _conservative_overlap(universes: Sequence[Universe]) -> tuple:
    kept: List[ZoneData] = []
    placeholders: List[ZoneData] = []
    unresolved: Dict[str, List[Dict[str, Any]]] = {}

    for zone_id in _zone_order(universes):
        variants = _variants(universes, zone_id)
        signatures = {(z.category, frozenset(z.equipment)) for _, _, z in variants}
        if len(variants) == len(universes) and len(signatures) == 1:
            kept.append(copy_zone(variants[0][2]))
            continue
        first = variants[0][2]
        placeholders.append(ZoneData(
            id=zone_id,
            name=first.name,
            category=ZoneCategory.UNRESOLVED,
            area=0.0,
            needs_resolution=True,
        ))
        unresolved[zone_id] = [
            {"universe": u.label or str(pos), "zone": z.to_dict()} for pos, u, z in variants
        ]

    # placeholders keep the edges that surviving zones still declare towards them
    for placeholder in placeholders:
        placeholder.adjacent = [z.id for z in kept if placeholder.id in z.adjacent]

    by_id = {z.id: z for z in kept + placeholders}
    return [by_id[zid] for zid in _zone_order(universes)], unresolved


def _finish(
    universes: Sequence[Universe],
    strategy: FusionStrategy,
    fused: LayoutData,
    constraints: Optional[Sequence[Any]],
    catalog: Optional[Container[str]],
    extra: Optional[Dict[str, Any]] = None,
) -> LayoutData:
    result = validate(fused, constraints, catalog)
    fused.provenance = f"fusion:{strategy.value}"
    fused.metadata = {
        "strategy": strategy.value,
        "sources": [u.label for u in universes],
        "valid": result.valid,
        "violations": [v.to_dict() for v in result.violations],
    }
    if extra:
        fused.metadata.update(extra)
    logger.info(
        f"Fused {len(universes)} universes with {strategy.value}: "
        f"{len(fused.zones)} zones, {len(result.violations)} violation(s)"
    )
    return fused


def fuse(
    universes: Sequence[Universe],
    strategy: FusionStrategy = FusionStrategy.BEST_OF_EACH,
    constraints: Optional[Sequence[Any]] = None,
    catalog: Optional[Container[str]] = None,
) -> LayoutData:
    """
    Merge universes with a deterministic strategy and re-validate the result.

    Always returns a layout; its violations go to ``metadata["violations"]``.

    Raises:
        InsufficientInputError: fewer than two universes
        ValueError: ``strategy`` needs the agent (use ``fuse_universes``)
    """
    strategy = FusionStrategy(strategy)
    _check_inputs(universes)
    if strategy.requires_agent:
        raise ValueError(f"Strategy '{strategy.value}' requires an agent adapter")

    extra = None
    if strategy == FusionStrategy.BEST_OF_EACH:
        zones = _best_of_each(universes)
    elif strategy == FusionStrategy.WEIGHTED_MERGE:
        zones = _weighted_merge(universes)
    else:
        zones, unresolved = _conservative_overlap(universes)
        extra = {"unresolved": unresolved}

    fused = copy_layout(universes[0].layout, zones=zones)
    return _finish(universes, strategy, fused, constraints, catalog, extra)


async def fuse_universes(
    universes: Sequence[Universe],
    strategy: FusionStrategy = FusionStrategy.BEST_OF_EACH,
    constraints: Optional[Sequence[Any]] = None,
    catalog: Optional[Container[str]] = None,
    adapter: Optional[AgentAdapter] = None,
    model_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> LayoutData:
    """Fuse with any strategy; generative ones go through ``adapter``."""
    strategy = FusionStrategy(strategy)
    _check_inputs(universes)
    if not strategy.requires_agent:
        return fuse(universes, strategy, constraints, catalog)
    if adapter is None:
        raise ValueError(f"Strategy '{strategy.value}' requires an agent adapter")

    base = universes[0].layout
    context = PromptContext(
        task="fuse",
        instructions=(
            f"Merge the following {len(universes)} design universes into one layout.\n"
            f"Fusion strategy: {STRATEGY_PROMPTS[strategy]}"
        ),
        payload={
            "universes": [{"label": u.label, "layout": u.layout.to_dict()} for u in universes],
            "constraints": [getattr(c, "name", type(c).__name__) for c in constraints or []],
        },
        response_format=LAYOUT_FORMAT,
        fallback=base,
        temperature=0.7,
    )
    fragment = await adapter.request(context, model_key=model_key, timeout=timeout)
    fused = copy_layout(fragment.layout, id=base.id, name=base.name, total_area=base.total_area, unit=base.unit)
    return _finish(universes, strategy, fused, constraints, catalog)
