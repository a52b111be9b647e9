import json
import re
from pathlib import Path
from typing import Any

import pytest

from hearthwood.config import reset_settings
from hearthwood.llm import GenerationParams, Generator, LLMError
from hearthwood.models import Character, Location
from hearthwood.notify import NotifyError
from hearthwood.pipeline import CycleLockManager
from hearthwood.retry import RetryPolicy
from hearthwood.storage import Storage

# Same attempt counts as production, no sleeping between attempts
FAST_POLICY = RetryPolicy(max_attempts=3, base_delay=0.0, backoff="linear")

MAP = [
    Location(name="hearth", description="An old stone hearth.", connections=["forest", "river"]),
    Location(name="forest", description="Tall pines.", connections=["hearth", "marsh"]),
    Location(name="river", description="A slow river.", connections=["hearth"]),
    Location(name="marsh", description="Reeds and mist.", connections=["forest"]),
]

DESTINY_REPLY = {
    "end_state": "Dies old and content by the hearth.",
    "milestones": [
        {"target_day": 75, "description": "Teaches a child to fish"},
        {"target_day": 25, "description": "Crosses the marsh alone"},
        {"target_day": 50, "description": "Builds a hut by the river"},
    ],
    "inclination": "Seeks company by the fire",
}


def stay_here(prompt: str) -> dict:
    """Action reply: stay at the place named on the prompt's WHERE line."""
    where = re.search(r"^WHERE: (.+)$", prompt, re.MULTILINE).group(1).strip()
    return {"action": "rests", "location": where, "target": None, "narrative": "Rests a while."}


class StubLLM:
    """Scripted LLM: one reply per stage.

    A reply is a string, a JSON-serialisable value, a callable taking the
    prompt, or an exception instance to raise. Stages with no reply raise
    LLMError.
    """

    def __init__(self, **responses: Any) -> None:
        self.responses: dict[str, Any] = {
            "health": "ok",
            "action": stay_here,
            "summary": {"summary": "A quiet day in the valley."},
            "destiny_create": DESTINY_REPLY,
            "destiny_recalculate": DESTINY_REPLY,
            **responses,
        }
        self.calls: list[tuple[str, str, str]] = []

    async def __call__(self, stage: str, system: str, prompt: str, params: GenerationParams) -> str:
        self.calls.append((stage, system, prompt))
        reply = self.responses.get(stage)
        if reply is None:
            raise LLMError(f"No scripted reply for stage {stage!r}")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return reply if isinstance(reply, str) else json.dumps(reply)

    def stages(self) -> list[str]:
        return [stage for stage, _, _ in self.calls]


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.messages: list[str] = []
        self.fail = fail

    async def __call__(self, message: str) -> None:
        if self.fail:
            raise NotifyError("chat unreachable")
        self.messages.append(message)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Keep a developer's .env and environment out of the tests."""
    for var in ("DATA_DIR", "LLM_PROVIDER_URL", "LLM_API_KEY", "LLM_FORMAT", "TRIGGER_SECRET"):
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def storage(data_dir: Path) -> Storage:
    """Fresh storage with the world record and a four-place map."""
    s = Storage(data_dir)
    s.init_world()
    for location in MAP:
        s.save_location(location)
    return s


@pytest.fixture
def add_character(storage: Storage):
    def _add(name: str, location: str = "hearth", **fields: Any) -> Character:
        return storage.save_character(Character(name=name, location=location, **fields))
    return _add


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def generator(stub_llm: StubLLM) -> Generator:
    return Generator(stub_llm, timeout=1.0, policy=FAST_POLICY, health_timeout=1.0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def locks(storage: Storage) -> CycleLockManager:
    return CycleLockManager(storage, policy=FAST_POLICY)
