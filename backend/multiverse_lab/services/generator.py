# multiverse_lab/services/generator.py
import asyncio
import logging
from typing import Any, Container, Dict, List, Optional, Sequence, Set, Tuple

from multiverse_lab.config import Config
from multiverse_lab.errors import AdapterExhaustedError
from multiverse_lab.models.layout import (
    DecisionPoint,
    DecisionPointKind,
    LayoutData,
    Universe,
    ZoneData,
    copy_layout,
    copy_zone,
    layout_signature,
)
from multiverse_lab.services.agent_adapter import AgentAdapter, AgentFragment, PromptContext
from multiverse_lab.services.metrics import fitness_score
from multiverse_lab.services.validator import validate

logger = logging.getLogger(__name__)

# Requests allowed per generation round, as a multiple of the requested count
MAX_REQUESTS_FACTOR = 2


def _instructions(decision: DecisionPoint, implicated: List[str], produced: List[str], constraint_names: List[str]) -> str:
    lines = [
        f'Generate ONE alternative design ("parallel universe") for the decision point: "{decision.description}".',
        f"Decision kind: {decision.kind.value}. Zones you may change: {', '.join(implicated) or 'none'}.",
    ]
    if decision.kind == DecisionPointKind.EQUIPMENT:
        lines.append("Only change the equipment lists of those zones; keep everything else identical.")
    elif decision.kind == DecisionPointKind.ZONE:
        lines.append("Do not add or remove zones; keep every other zone exactly as it is.")
    else:
        lines.append("You may restructure, remove or add zones in that part of the layout; keep every other zone exactly as it is.")
    if produced:
        lines.append("These directions were already explored, choose a clearly different one: " + "; ".join(produced))
    if constraint_names:
        lines.append("The result must satisfy: " + ", ".join(constraint_names))
    return "\n".join(lines)


def pin_untouched_zones(base: LayoutData, candidate: LayoutData, decision: DecisionPoint) -> LayoutData:
    """
    Rebuild ``candidate`` so that only what ``decision`` implicates differs from ``base``.

    Zones outside the decision point are copied from ``base`` whatever the model
    returned for them. For equipment decisions only the equipment of implicated
    zones is taken from the candidate.
    """
    implicated = set(decision.implicated(base))
    proposed = {z.id: z for z in candidate.zones}
    zones: List[ZoneData] = []
    # zones whose adjacency is the model's rather than the base layout's
    proposed_ids: Set[str] = set()

    for zone in base.zones:
        new = proposed.get(zone.id)
        if zone.id not in implicated:
            zones.append(copy_zone(zone))
        elif decision.kind == DecisionPointKind.EQUIPMENT:
            zones.append(copy_zone(zone, equipment=list(new.equipment)) if new else copy_zone(zone))
        elif new is None:
            # structure decisions may drop implicated zones
            if decision.kind == DecisionPointKind.ZONE:
                zones.append(copy_zone(zone))
        else:
            zones.append(copy_zone(new))
            proposed_ids.add(zone.id)

    if decision.kind == DecisionPointKind.STRUCTURE:
        base_ids = {z.id for z in base.zones}
        for z in candidate.zones:
            if z.id not in base_ids:
                zones.append(copy_zone(z))
                proposed_ids.add(z.id)

    dropped = [zid for zid in proposed if zid not in {z.id for z in zones}]
    if dropped:
        logger.info(f"Ignored changes outside decision point '{decision.description}': {dropped}")

    _reconcile_adjacency(zones, proposed_ids)
    return copy_layout(base, zones=zones, description=candidate.description or base.description)


def _reconcile_adjacency(zones: List[ZoneData], proposed_ids: Set[str]):
    """
    Keep adjacency two-sided after pinning.

    Edges between a proposed zone and a pinned one follow the proposed zone.
    Pinned zones only ever gain or lose such edges; nothing else about them changes.
    """
    present = {z.id for z in zones}
    for zone in zones:
        if zone.id in proposed_ids:
            zone.adjacent = [a for a in zone.adjacent if a in present and a != zone.id]

    for zone in zones:
        if zone.id in proposed_ids:
            continue
        linked = [z.id for z in zones if z.id in proposed_ids and zone.id in z.adjacent]
        kept = [a for a in zone.adjacent if a in present and (a not in proposed_ids or a in linked)]
        zone.adjacent = kept + [zid for zid in linked if zid not in kept]


class UniverseGenerator:
    """
    Produces candidate resolutions ("universes") of one decision point.

    Usage:
        generator = UniverseGenerator(AgentAdapter())
        universes = await generator.generate(layout, DecisionPoint("lab equipment choice"))
    """

    def __init__(self, adapter: AgentAdapter, catalog: Optional[Container[str]] = None):
        self.adapter = adapter
        self.catalog = catalog

    async def generate(
        self,
        current_layout: LayoutData,
        decision_point: DecisionPoint,
        constraints: Optional[Sequence[Any]] = None,
        count: Optional[int] = None,
        model_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[Universe]:
        """
        Generate up to ``count`` distinct universes for ``decision_point``.

        Invalid candidates are returned flagged, never dropped. Duplicates are
        discarded and not replaced by padding. AdapterExhaustedError only
        escapes when not a single candidate could be produced.
        """
        count = count if count is not None else Config.DEFAULT_UNIVERSE_COUNT
        if count < 1:
            return []
        constraints = list(constraints or [])
        implicated = decision_point.implicated(current_layout)

        universes: List[Universe] = []
        seen: Set[Tuple] = set()
        requests = 0

        while len(universes) < count and requests < count * MAX_REQUESTS_FACTOR:
            requests += 1
            context = PromptContext(
                task="generate",
                instructions=_instructions(
                    decision_point, implicated,
                    [u.label for u in universes],
                    [getattr(c, "name", type(c).__name__) for c in constraints],
                ),
                payload={
                    "currentLayout": current_layout.to_dict(),
                    "decisionPoint": decision_point.to_dict(),
                    "index": len(universes),
                },
                fallback=current_layout,
            )
            try:
                fragment = await self.adapter.request(context, model_key=model_key, timeout=timeout)
            except AdapterExhaustedError:
                if not universes:
                    raise
                logger.warning(f"Adapter exhausted after {len(universes)} universe(s); returning partial set")
                break

            layout = pin_untouched_zones(current_layout, fragment.layout, decision_point)
            signature = layout_signature(layout)
            if signature in seen:
                logger.info(f"Discarding duplicate resolution '{fragment.label}'")
                continue
            seen.add(signature)
            universes.append(self._build_universe(len(universes), layout, fragment, decision_point, constraints))

        valid = sum(1 for u in universes if u.valid)
        logger.info(
            f"Generated {len(universes)} universe(s) for '{decision_point.description}' "
            f"({valid} valid, {requests} request(s))"
        )
        return universes

    async def generate_branches(
        self,
        current_layout: LayoutData,
        decision_points: Sequence[DecisionPoint],
        constraints: Optional[Sequence[Any]] = None,
        count: Optional[int] = None,
        model_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, List[Universe]]:
        """Run one independent generation per decision point concurrently, keyed by description."""
        results = await asyncio.gather(*[
            self.generate(current_layout, dp, constraints, count, model_key, timeout)
            for dp in decision_points
        ])
        return {dp.description: universes for dp, universes in zip(decision_points, results)}

    def _build_universe(
        self,
        index: int,
        layout: LayoutData,
        fragment: AgentFragment,
        decision_point: DecisionPoint,
        constraints: List[Any],
    ) -> Universe:
        label = fragment.label or f"Universe {index + 1}"
        layout.provenance = f"universe:{index}"
        layout.metadata = {"decisionPoint": decision_point.description, "label": label}

        result = validate(layout, constraints, self.catalog)
        if not result.valid:
            logger.info(f"Universe {index} '{label}' is invalid: {len(result.violations)} violation(s)")
        return Universe(
            index=index,
            label=label,
            layout=layout,
            valid=result.valid,
            violations=result.violations,
            fitness=fitness_score(result.violations, fragment.efficiency_score),
            description=fragment.description,
            pros=list(fragment.pros),
            cons=list(fragment.cons),
            estimated_cost=fragment.estimated_cost,
        )
