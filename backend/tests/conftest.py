"""Shared fixtures: a small two-zone lab layout and a scripted stand-in for the model."""
import asyncio
import json

import pytest

from multiverse_lab.models.layout import LayoutData, ZoneCategory, ZoneData
from multiverse_lab.services.agent_adapter import AgentAdapter


class FakeTransport:
    """
    Plays back scripted model answers in order, repeating the last one when the
    script runs out. An item may be a string (returned), an exception instance
    (raised) or an async callable (awaited).
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0
        self.prompts = []

    async def __call__(self, system_prompt, prompt, model_key, temperature):
        self.prompts.append({"system": system_prompt, "prompt": prompt, "model": model_key})
        item = self.responses[min(self.calls, len(self.responses) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return await item()
        return item


def make_layout(zones, total_area=70.0, layout_id="lab-1"):
    return LayoutData(id=layout_id, name="Lab", total_area=total_area, zones=zones)


def variant(layout: LayoutData, name: str, **extra) -> str:
    """Model answer wrapping ``layout`` the way the generation prompt asks for."""
    return json.dumps({"name": name, "layout": layout.to_dict(), **extra})


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def base_layout():
    return make_layout([
        ZoneData("lab", "Wet Lab", ZoneCategory.WORKSPACE, 40.0, ["microscope"], ["office"]),
        ZoneData("office", "Office", ZoneCategory.WORKSPACE, 20.0, ["desk"], ["lab"]),
    ])


@pytest.fixture
def adapter_factory():
    def build(*responses, **kwargs):
        transport = FakeTransport(*responses)
        kwargs.setdefault("backoff", 0)
        kwargs.setdefault("timeout", 5)
        return AgentAdapter(transport=transport, **kwargs), transport
    return build
