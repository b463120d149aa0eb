# src/second_brain/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .capture import CaptureOrchestrator
from .dates import Clock
from .ports import ChatGateway, LLMProvider, RecordStore


@dataclass
class AppState:
    """
    Process-scoped services, built once by the composition root.

    Connectors share the provider and the store; each gateway gets its own
    orchestrator (built lazily and cached by gateway identity).
    """

    settings: Any
    llm: LLMProvider
    store: RecordStore
    clock: Clock
    store_backend: str = "sqlite"

    _orchestrators: dict[int, CaptureOrchestrator] = field(default_factory=dict, repr=False)

    def orchestrator_for(self, gateway: ChatGateway) -> CaptureOrchestrator:
        key = id(gateway)
        orch = self._orchestrators.get(key)
        if orch is None:
            orch = CaptureOrchestrator(
                llm=self.llm,
                store=self.store,
                gateway=gateway,
                clock=self.clock,
                mode=getattr(self.settings, "capture_mode", "agentic"),
                thinking_level=getattr(self.settings, "thinking_level", "low"),
                max_turns=int(getattr(self.settings, "agent_max_turns", 5)),
            )
            self._orchestrators[key] = orch
        return orch
