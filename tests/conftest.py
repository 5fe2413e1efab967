from typing import Any, Dict, List, Tuple

import pytest

from relay_core.core.types import AgentEventType, AgentFunction


class EventRecorder:
    """Callback collecting (event_type, payload) pairs."""

    def __init__(self):
        self.events: List[Tuple[AgentEventType, Dict[str, Any]]] = []

    def __call__(self, event_type: AgentEventType, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    @property
    def types(self) -> List[AgentEventType]:
        return [t for t, _ in self.events]

    def of(self, event_type: AgentEventType) -> List[Dict[str, Any]]:
        return [p for t, p in self.events if t == event_type]


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def settings() -> Dict[str, Any]:
    """Empty settings: every knob falls back to its default."""
    return {}


@pytest.fixture
def weather_fn() -> AgentFunction:
    return AgentFunction(
        name="getWeather",
        description="Current weather for a city",
        parameters={"type": "object", "properties": {"city": {"type": "string"}}, "required": ["city"]},
        executor=lambda args: {"temp": 20},
    )
