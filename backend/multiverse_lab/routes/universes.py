# multiverse_lab/routes/universes.py

from typing import Container, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from multiverse_lab.config import Config
from multiverse_lab.errors import LabError
from multiverse_lab.models.requests import GenerateUniversesRequest, FuseUniversesRequest
from multiverse_lab.models.responses import (
    ErrorResponse,
    FuseUniversesResponse,
    GenerateUniversesResponse,
    ModelInfo,
    ModelsResponse,
)
from multiverse_lab.services.agent_adapter import AgentAdapter
from multiverse_lab.services.fusion import fuse_universes
from multiverse_lab.services.generator import UniverseGenerator
from multiverse_lab.services.llm_client import MODELS, available_models
from multiverse_lab.services.metrics import fitness_score, layout_metrics
from multiverse_lab.services.validator import constraint_from_dict, validate
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/parallel-universes")

ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in (400, 404, 422, 500, 502)}


def get_adapter() -> AgentAdapter:
    return AgentAdapter()


def get_catalog() -> Optional[Container[str]]:
    # The equipment catalog belongs to the hosting application; none by default
    return None


def _error(exc: LabError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


def _unexpected(exc: Exception) -> JSONResponse:
    logger.exception(f"Parallel universe API error: {exc}")
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


@router.post("/generate", response_model=GenerateUniversesResponse, responses=ERROR_RESPONSES)
async def generate_universes(
    req: GenerateUniversesRequest,
    adapter: AgentAdapter = Depends(get_adapter),
    catalog: Optional[Container[str]] = Depends(get_catalog),
):
    try:
        constraints = [constraint_from_dict(c) for c in req.constraints]
        generator = UniverseGenerator(adapter, catalog=catalog)
        universes = await generator.generate(
            req.currentLayout.to_domain(),
            req.decision_point(),
            constraints=constraints,
            count=req.count,
            model_key=req.modelKey,
        )
        return {
            "universes": [
                {**u.to_dict(), "metrics": layout_metrics(u.layout)} for u in universes
            ]
        }
    except LabError as exc:
        return _error(exc)
    except Exception as exc:
        return _unexpected(exc)


@router.post("/fuse", response_model=FuseUniversesResponse, responses=ERROR_RESPONSES)
async def fuse(
    req: FuseUniversesRequest,
    adapter: AgentAdapter = Depends(get_adapter),
    catalog: Optional[Container[str]] = Depends(get_catalog),
):
    try:
        constraints = [constraint_from_dict(c) for c in req.constraints]
        universes = []
        for item in req.universes:
            universe = item.to_domain()
            if item.valid is None:
                # caller sent a bare layout: judge it like the generator would
                result = validate(universe.layout, constraints, catalog)
                universe.valid, universe.violations = result.valid, result.violations
                universe.fitness = fitness_score(result.violations)
            universes.append(universe)

        layout = await fuse_universes(
            universes,
            req.fusionStrategy,
            constraints=constraints,
            catalog=catalog,
            adapter=adapter,
            model_key=req.modelKey,
        )
        return {"layout": layout.to_dict(), "metrics": layout_metrics(layout)}
    except LabError as exc:
        return _error(exc)
    except Exception as exc:
        return _unexpected(exc)


@router.get("/models", response_model=ModelsResponse)
async def list_models():
    available = {m.key for m in available_models()}
    return {
        "default": Config.DEFAULT_MODEL_KEY,
        "models": [
            ModelInfo(key=m.key, name=m.name, provider=m.provider, available=m.key in available)
            for m in MODELS.values()
        ],
    }
