"""Runtime handles shared by the endpoints, stored on app.state."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from hearthwood.config import Settings
from hearthwood.llm import Generator
from hearthwood.notify import Notifier
from hearthwood.pipeline import Orchestrator
from hearthwood.storage import Storage


@dataclass
class Runtime:
    settings: Settings
    storage: Storage
    generator: Generator
    notifier: Notifier

    def orchestrator(self) -> Orchestrator:
        return Orchestrator(self.storage, self.generator, self.notifier)


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
