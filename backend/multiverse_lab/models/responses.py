from pydantic import BaseModel
from typing import List, Dict, Any, Optional

from multiverse_lab.models.requests import LayoutModel, ViolationModel

class LayoutMetricsModel(BaseModel):
    totalArea: float
    usedArea: float
    efficiency: float
    estimatedCost: float
    safetyScore: int

class UniverseResponse(BaseModel):
    index: int
    label: str
    layout: LayoutModel
    valid: bool
    violations: List[ViolationModel]
    fitness: Optional[float] = None
    description: str = ""
    pros: List[str] = []
    cons: List[str] = []
    estimatedCost: Optional[float] = None
    metrics: LayoutMetricsModel

class GenerateUniversesResponse(BaseModel):
    universes: List[UniverseResponse]

class FuseUniversesResponse(BaseModel):
    layout: LayoutModel
    metrics: LayoutMetricsModel

class ModelInfo(BaseModel):
    key: str
    name: str
    provider: str
    available: bool

class ModelsResponse(BaseModel):
    default: str
    models: List[ModelInfo]

class ErrorResponse(BaseModel):
    error: str
    violations: Optional[List[Dict[str, Any]]] = None
    lastResponse: Optional[str] = None
