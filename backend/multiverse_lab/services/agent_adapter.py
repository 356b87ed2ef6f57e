# multiverse_lab/services/agent_adapter.py
"""
Boundary around the external generative model.

The model is treated as an untrusted data source: its text is parsed into
JSON, checked against a pydantic schema, repaired where the fix is obvious
(category synonyms, "40 m2" areas, one-sided adjacency) and rejected
otherwise. Rejected answers and transport failures are retried; once the
attempt budget is spent the caller gets AdapterExhaustedError.
"""

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError as SchemaError, field_validator, model_validator

from multiverse_lab.config import Config
from multiverse_lab.errors import AdapterExhaustedError, MalformedResponseError
from multiverse_lab.models.layout import LayoutData, ZoneCategory, ZoneData
from multiverse_lab.services import llm_client

logger = logging.getLogger(__name__)

# (system_prompt, prompt, model_key, temperature) -> raw model text
Transport = Callable[[str, str, str, float], Awaitable[str]]

LAB_SYSTEM_PROMPT = """You are a spatial design expert for research labs who explores alternative design directions.

Every layout you return is JSON with this shape:
{
  "id": "<layout id>",
  "name": "<layout name>",
  "totalArea": <number, area budget>,
  "unit": "m" | "ft",
  "zones": [
    {
      "id": "<unique zone id>",
      "name": "<zone name>",
      "category": "compute" | "workspace" | "meeting" | "storage" | "utility" | "entrance",
      "area": <number>,
      "equipment": ["<equipment id>", ...],
      "adjacent": ["<zone id>", ...]
    }
  ]
}

Rules:
- Zone ids are unique. Keep the ids of zones you do not intend to change.
- Areas are plain numbers in the layout's unit (no units in the value).
- Adjacency is symmetric: if A lists B, B lists A.
- Answer with JSON only."""

VARIANT_FORMAT = """Answer with ONE JSON object:
{
  "name": "<short label for this design direction>",
  "theme": "<design theme>",
  "description": "<what changes and why>",
  "layout": { <complete layout> },
  "pros": ["..."],
  "cons": ["..."],
  "estimatedCost": <number>,
  "efficiencyScore": <number between 0 and 1>
}"""

LAYOUT_FORMAT = "Answer with ONE JSON object: the complete merged layout."

CATEGORY_SYNONYMS = {
    ZoneCategory.COMPUTE: ("compute", "server", "gpu", "hpc", "data center", "datacenter", "cluster"),
    ZoneCategory.WORKSPACE: ("workspace", "work", "workshop", "office", "desk", "lab", "bench", "studio"),
    ZoneCategory.MEETING: ("meeting", "conference", "seminar", "discussion", "huddle", "collaboration"),
    ZoneCategory.STORAGE: ("storage", "store", "warehouse", "archive", "closet", "inventory"),
    ZoneCategory.UTILITY: ("utility", "mechanical", "electrical", "service", "plant", "hvac"),
    ZoneCategory.ENTRANCE: ("entrance", "entry", "lobby", "reception", "foyer"),
}

_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")
_WORD = re.compile(r"[a-z0-9]+")


def _words(text: str) -> str:
    """Space-padded words of ``text`` with a plural "s" dropped, so phrases match on word boundaries."""
    words = [
        w[:-1] if len(w) > 3 and w.endswith("s") and not w.endswith("ss") else w
        for w in _WORD.findall(text)
    ]
    return f" {' '.join(words)} "


def normalize_category(value: Any) -> ZoneCategory:
    """Map a model-supplied category (or a common synonym) onto the closed set."""
    text = str(value or "").strip().lower()
    try:
        return ZoneCategory(text)
    except ValueError:
        pass
    words = _words(text)
    for category, synonyms in CATEGORY_SYNONYMS.items():
        if any(f" {s} " in words for s in synonyms):
            return category
    raise ValueError(f"unknown zone category '{value}'")


def _coerce_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("area must be a number")
    number = None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _NUMBER.match(value)
        if match:
            number = float(match.group(1))
    if number is None:
        raise ValueError(f"area '{value}' is not numeric")
    if not math.isfinite(number):
        raise ValueError(f"area '{value}' is not a finite number")
    return number


class _AgentZone(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    category: ZoneCategory
    area: float
    equipment: List[str] = Field(default_factory=list)
    adjacent: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _fill_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "category" not in data and "type" in data:
            data["category"] = data["type"]
        if data.get("area") is None and isinstance(data.get("size"), dict):
            size = data["size"]
            try:
                data["area"] = _coerce_number(size.get("width")) * _coerce_number(size.get("height"))
            except ValueError:
                pass
        if "adjacent" not in data and "adjacency" in data:
            data["adjacent"] = data["adjacency"]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_text(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list)) or not str(v).strip():
            raise ValueError("zone id is required")
        return str(v).strip()

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, v: Any) -> ZoneCategory:
        return normalize_category(v)

    @field_validator("area", mode="before")
    @classmethod
    def _area(cls, v: Any) -> float:
        return _coerce_number(v)

    @field_validator("equipment", "adjacent", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> List[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(item) for item in v if item is not None and not isinstance(item, (dict, list))]
        raise ValueError("expected a list of strings")


class _AgentLayout(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    total_area: Optional[float] = Field(default=None, alias="totalArea")
    unit: Optional[str] = None
    description: Optional[str] = None
    dimensions: Optional[Dict[str, Any]] = None
    zones: List[_AgentZone] = Field(min_length=1)
    connections: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("id", "name", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("total_area", mode="before")
    @classmethod
    def _total(cls, v: Any) -> Optional[float]:
        return None if v is None else _coerce_number(v)

    @model_validator(mode="after")
    def _unique_ids(self) -> "_AgentLayout":
        seen = set()
        for zone in self.zones:
            if zone.id in seen:
                raise ValueError(f"duplicate zone id '{zone.id}'")
            seen.add(zone.id)
        return self


@dataclass
class PromptContext:
    """Everything one adapter request needs; ``payload`` is serialized verbatim into the prompt."""
    task: str
    instructions: str
    payload: Dict[str, Any]
    response_format: str = VARIANT_FORMAT
    system_prompt: str = LAB_SYSTEM_PROMPT
    fallback: Optional[LayoutData] = None
    temperature: float = 0.8

    def render(self) -> str:
        body = json.dumps(self.payload, sort_keys=True, indent=2, ensure_ascii=False)
        return f"{self.instructions}\n\nContext:\n{body}\n\n{self.response_format}"


@dataclass
class AgentFragment:
    layout: LayoutData
    label: str = ""
    description: str = ""
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)
    estimated_cost: Optional[float] = None
    efficiency_score: Optional[float] = None
    raw: str = ""


def extract_json_from_response(text: str) -> Any:
    """Extract JSON from a model response that might contain markdown or extra text."""
    if not isinstance(text, str) or not text.strip():
        raise MalformedResponseError("Empty response", raw=text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Look for JSON in markdown code blocks
    for match in re.findall(r"```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```", text):
        try:
            return json.loads(match)
        except json.JSONDecodeError:
            continue

    # Outermost object in free text
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            pass

    raise MalformedResponseError("No valid JSON found in response", raw=text)


def _repair_adjacency(zones: List[_AgentZone], connections: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Drop self/unknown references, fold in 'connections' and make every edge two-sided."""
    ids = [z.id for z in zones]
    known = set(ids)
    adjacency: Dict[str, List[str]] = {zid: [] for zid in ids}

    def link(a: str, b: str):
        if a == b or a not in known or b not in known:
            return
        if b not in adjacency[a]:
            adjacency[a].append(b)
        if a not in adjacency[b]:
            adjacency[b].append(a)

    for zone in zones:
        for other in zone.adjacent:
            if other not in known:
                logger.debug("Dropping unknown neighbour %s of zone %s", other, zone.id)
            link(zone.id, other)
    for conn in connections:
        link(str(conn.get("from")), str(conn.get("to")))
    return adjacency


def _to_layout(data: Dict[str, Any], fallback: Optional[LayoutData], raw: str) -> LayoutData:
    try:
        parsed = _AgentLayout.model_validate(data)
    except SchemaError as e:
        raise MalformedResponseError(f"Layout failed schema validation: {e.errors()[0].get('msg')}", raw=raw)

    adjacency = _repair_adjacency(parsed.zones, parsed.connections)
    zones = [
        ZoneData(
            id=z.id,
            name=z.name or z.id,
            category=z.category,
            area=z.area,
            equipment=list(dict.fromkeys(z.equipment)),
            adjacent=adjacency[z.id],
        )
        for z in parsed.zones
    ]

    total = parsed.total_area
    if total is None and parsed.dimensions:
        try:
            total = _coerce_number(parsed.dimensions.get("width")) * _coerce_number(parsed.dimensions.get("height"))
        except ValueError:
            total = None
    if total is None and fallback is not None:
        total = fallback.total_area
    if total is None:
        total = sum(z.area for z in zones)

    unit = parsed.unit or (parsed.dimensions or {}).get("unit") or (fallback.unit if fallback else "m")
    return LayoutData(
        id=parsed.id or (fallback.id if fallback else "layout"),
        name=parsed.name or (fallback.name if fallback else "Layout"),
        total_area=total,
        zones=zones,
        unit=unit if unit in ("m", "ft") else "m",
        description=parsed.description or (fallback.description if fallback else ""),
    )


def parse_fragment(raw: str, fallback: Optional[LayoutData] = None) -> AgentFragment:
    """Turn raw model text into an AgentFragment, or raise MalformedResponseError."""
    data = extract_json_from_response(raw)
    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, dict)), None)
    if not isinstance(data, dict):
        raise MalformedResponseError("Response is not a JSON object", raw=raw)

    if isinstance(data.get("layout"), dict):
        layout = _to_layout(data["layout"], fallback, raw)
        label = str(data.get("name") or data.get("label") or data.get("theme") or "")
        try:
            cost = _coerce_number(data["estimatedCost"]) if data.get("estimatedCost") is not None else None
            efficiency = _coerce_number(data["efficiencyScore"]) if data.get("efficiencyScore") is not None else None
        except ValueError:
            cost, efficiency = None, None
        return AgentFragment(
            layout=layout,
            label=label,
            description=str(data.get("description") or ""),
            pros=[str(p) for p in data.get("pros") or [] if isinstance(p, (str, int, float))],
            cons=[str(c) for c in data.get("cons") or [] if isinstance(c, (str, int, float))],
            estimated_cost=cost,
            efficiency_score=efficiency,
            raw=raw,
        )

    layout = _to_layout(data, fallback, raw)
    return AgentFragment(layout=layout, label=layout.name, description=layout.description, raw=raw)


async def http_transport(system_prompt: str, prompt: str, model_key: str, temperature: float) -> str:
    model = llm_client.get_model(model_key)
    return await llm_client.complete(system_prompt, prompt, model, temperature=temperature)


class AgentAdapter:
    """Single-method wrapper around one external generative call, with bounded retries."""

    def __init__(
        self,
        transport: Optional[Transport] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff: Optional[float] = None,
        default_model_key: Optional[str] = None,
    ):
        self.transport = transport or http_transport
        self.max_attempts = max(1, max_attempts if max_attempts is not None else Config.AGENT_MAX_ATTEMPTS)
        self.timeout = timeout if timeout is not None else Config.AGENT_TIMEOUT_SECONDS
        self.backoff = backoff if backoff is not None else Config.AGENT_RETRY_BACKOFF
        self.default_model_key = default_model_key or Config.DEFAULT_MODEL_KEY
        self.stats = {"calls": 0, "errors": 0, "retries": 0}

    async def request(
        self,
        context: PromptContext,
        model_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> AgentFragment:
        """
        Run one prompt against the model and parse the answer.

        Args:
            context: Prompt pieces plus the fallback layout used to fill gaps
            model_key: Opaque model selector, passed through to the transport
            timeout: Per-attempt timeout in seconds (defaults to the adapter's)

        Returns:
            The parsed, repaired fragment.

        Raises:
            AdapterExhaustedError: every attempt failed or came back malformed
            UnknownModelError: the model key does not resolve (not retried)
        """
        key = model_key or self.default_model_key
        limit = timeout if timeout is not None else self.timeout
        prompt = context.render()
        last_raw: Optional[str] = None
        last_error: Optional[Exception] = None

        for attempt in range(self.max_attempts):
            try:
                self.stats["calls"] += 1
                raw = await asyncio.wait_for(
                    self.transport(context.system_prompt, prompt, key, context.temperature),
                    timeout=limit,
                )
                last_raw = raw
                return parse_fragment(raw, context.fallback)
            except MalformedResponseError as e:
                last_error = e
                logger.warning(f"Malformed {context.task} response (attempt {attempt + 1}/{self.max_attempts}): {e}")
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(f"{context.task} call timed out after {limit}s (attempt {attempt + 1}/{self.max_attempts})")
            except httpx.HTTPError as e:
                last_error = e
                logger.warning(f"{context.task} call failed (attempt {attempt + 1}/{self.max_attempts}): {e}")

            self.stats["errors"] += 1
            if attempt < self.max_attempts - 1:
                self.stats["retries"] += 1
                if self.backoff > 0:
                    await asyncio.sleep(self.backoff * 2 ** attempt)

        raise AdapterExhaustedError(
            f"Model call for {context.task} failed after {self.max_attempts} attempts: {last_error}",
            last_response=last_raw,
            attempts=self.max_attempts,
        )

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
