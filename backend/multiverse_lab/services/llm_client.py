# multiverse_lab/services/llm_client.py
"""
Outbound calls to hosted text models, one httpx request per call.

Model keys are opaque to the rest of the lab: callers pass a key such as
"claude-sonnet" and this module resolves it to a provider, a model id and the
request shape that provider expects.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from multiverse_lab.config import Config
from multiverse_lab.errors import MalformedResponseError, UnknownModelError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelConfig:
    key: str
    id: str
    name: str
    provider: str  # "anthropic" | "poe" | "google"
    max_tokens: int = 8192


MODELS: Dict[str, ModelConfig] = {
    "claude-sonnet": ModelConfig("claude-sonnet", "claude-sonnet-4-20250514", "Claude Sonnet 4", "anthropic"),
    "claude-haiku": ModelConfig("claude-haiku", "claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "anthropic"),
    "poe-gpt4o": ModelConfig("poe-gpt4o", "gpt-4o", "GPT-4o (via Poe)", "poe", 4096),
    "poe-claude": ModelConfig("poe-claude", "claude-3-5-sonnet", "Claude 3.5 Sonnet (via Poe)", "poe", 4096),
    "gemini-pro": ModelConfig("gemini-pro", "gemini-2.0-flash", "Gemini 2.0 Flash", "google"),
}

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
POE_URL = "https://api.poe.com/v1/chat/completions"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def get_model(model_key: str) -> ModelConfig:
    config = MODELS.get(model_key)
    if config is None:
        raise UnknownModelError(f"Unknown model: {model_key}")
    return config


def _api_key(provider: str) -> str:
    return {
        "anthropic": Config.ANTHROPIC_API_KEY,
        "poe": Config.POE_API_KEY,
        "google": Config.GEMINI_API_KEY,
    }[provider]


def available_models() -> List[ModelConfig]:
    """Models whose provider has an API key configured."""
    return [m for m in MODELS.values() if _api_key(m.provider)]


async def complete(
    system_prompt: str,
    prompt: str,
    model: ModelConfig,
    temperature: float = 0.7,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """
    Send one prompt and return the model's text.

    Raises httpx.HTTPError on transport/HTTP failure and MalformedResponseError
    when a successful reply is not JSON. ``client`` defaults to a fresh AsyncClient.
    """
    key = _api_key(model.provider)

    if model.provider == "anthropic":
        url = ANTHROPIC_URL
        headers = {"x-api-key": key, "anthropic-version": "2023-06-01", "content-type": "application/json"}
        payload = {
            "model": model.id,
            "max_tokens": model.max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
    elif model.provider == "poe":
        url = POE_URL
        headers = {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}
        payload = {
            "model": model.id,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
        }
    else:
        url = GEMINI_URL.format(model=model.id)
        headers = {"Content-Type": "application/json", "x-goog-api-key": key}
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "response_mime_type": "application/json",
                "temperature": temperature,
            },
        }

    if client is None:
        # Timeouts are enforced per attempt by the adapter
        async with httpx.AsyncClient(timeout=None) as own_client:
            resp = await own_client.post(url, headers=headers, json=payload)
    else:
        resp = await client.post(url, headers=headers, json=payload)
    resp.raise_for_status()
    try:
        data = resp.json()
    except ValueError:
        # e.g. an HTML error page from a proxy in front of the provider
        raise MalformedResponseError(f"{model.provider} answered with a non-JSON body", raw=resp.text)

    try:
        if model.provider == "anthropic":
            return "".join(part.get("text", "") for part in data["content"])
        if model.provider == "poe":
            return data["choices"][0]["message"]["content"]
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        logger.warning("Unexpected %s response format: %s", model.provider, e)
        return ""
