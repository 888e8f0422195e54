from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from .config import ReasoningConfig, Settings
from .services.extractor import HttpPost, TextExtractor
from .services.notifications import Notifier
from .services.pipeline import PipelineOrchestrator
from .services.suggestions import SuggestionService
from .services.tasks import TaskStore


@dataclass
class State:
    """Services shared across requests, attached to FastAPI's app.state."""

    settings: Settings
    extractor: TextExtractor
    tasks: TaskStore = field(default_factory=TaskStore)
    notifier: Notifier = field(default_factory=Notifier)
    suggestions: Optional[SuggestionService] = None
    pipeline: Optional[PipelineOrchestrator] = None

    def __post_init__(self) -> None:
        if self.suggestions is None:
            self.suggestions = SuggestionService(tasks=self.tasks, notifier=self.notifier)
        if self.pipeline is None:
            self.pipeline = PipelineOrchestrator(self.extractor, self.suggestions, self.tasks)

    @classmethod
    def from_settings(cls, settings: Settings, http_post: Optional[HttpPost] = None) -> "State":
        return cls(settings=settings, extractor=TextExtractor(settings.reasoning_config(), http_post=http_post))

    def set_reasoning_config(self, config: ReasoningConfig) -> None:
        self.extractor.config = config if config.configured else ReasoningConfig.not_configured()


def get_state(request: Request) -> State:  # FastAPI dependency helper
    return request.app.state.state
