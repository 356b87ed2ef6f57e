# multiverse_lab/models/requests.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal, Union

from multiverse_lab.models.layout import DecisionPoint, DecisionPointKind, LayoutData, Universe, ZoneCategory
from multiverse_lab.services.fusion import FusionStrategy
from multiverse_lab.services.validator import Violation

class ZoneModel(BaseModel):
    id: str
    name: Optional[str] = None
    category: ZoneCategory
    area: float
    equipment: List[str] = []
    adjacent: List[str] = []
    needsResolution: bool = False

class LayoutModel(BaseModel):
    id: str
    name: Optional[str] = None
    totalArea: float
    unit: Literal["m", "ft"] = "m"
    description: str = ""
    zones: List[ZoneModel]
    provenance: Optional[str] = None
    metadata: Dict[str, Any] = {}

    def to_domain(self) -> LayoutData:
        return LayoutData.from_dict(self.model_dump(mode="json"))

class DecisionPointModel(BaseModel):
    description: str
    kind: DecisionPointKind = DecisionPointKind.STRUCTURE
    zoneIds: List[str] = []

class ViolationModel(BaseModel):
    constraint: str
    zoneIds: List[str] = []
    reason: str = ""

class UniverseModel(BaseModel):
    index: int = 0
    label: str = ""
    layout: LayoutModel
    valid: Optional[bool] = None  # None: not yet validated
    violations: List[ViolationModel] = []
    fitness: Optional[float] = None
    description: str = ""
    pros: List[str] = []
    cons: List[str] = []
    estimatedCost: Optional[float] = None

    def to_domain(self) -> Universe:
        return Universe(
            index=self.index,
            label=self.label or f"Universe {self.index + 1}",
            layout=self.layout.to_domain(),
            valid=self.valid if self.valid is not None else True,
            violations=[Violation.from_dict(v.model_dump()) for v in self.violations],
            fitness=self.fitness,
            description=self.description,
            pros=list(self.pros),
            cons=list(self.cons),
            estimated_cost=self.estimatedCost,
        )

class GenerateUniversesRequest(BaseModel):
    currentLayout: LayoutModel
    # A bare string is a structural decision over the whole layout
    decisionPoint: Union[str, DecisionPointModel]
    constraints: List[Dict[str, Any]] = []
    count: Optional[int] = Field(default=None, ge=1, le=10)
    modelKey: Optional[str] = None

    def decision_point(self) -> DecisionPoint:
        if isinstance(self.decisionPoint, str):
            return DecisionPoint(description=self.decisionPoint)
        return DecisionPoint(
            description=self.decisionPoint.description,
            kind=self.decisionPoint.kind,
            zone_ids=tuple(self.decisionPoint.zoneIds),
        )

class FuseUniversesRequest(BaseModel):
    universes: List[UniverseModel]
    fusionStrategy: FusionStrategy = FusionStrategy.BEST_OF_EACH
    constraints: List[Dict[str, Any]] = []
    modelKey: Optional[str] = None
