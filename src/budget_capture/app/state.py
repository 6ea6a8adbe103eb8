"""Interactive session as an explicit state machine.

    IDLE --StartCapture--> CAPTURING --PageCaptured--> REVIEWING
    REVIEWING --Submit--> PROCESSING --ExtractionSucceeded--> RESULT
                                     --ExtractionFailed-----> ERROR
    RESULT/ERROR --PageCaptured--> REVIEWING (new capture)
    any state except PROCESSING --Reset--> IDLE
    any state except PROCESSING --SelectFromHistory--> RESULT
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from ..capture import CapturedPage
from ..domain.models import BudgetDocument
from ..extraction.errors import ExtractionError
from ..logging import get_logger

LOG = get_logger("app-state")


class AppState(str, enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    REVIEWING = "reviewing"
    PROCESSING = "processing"
    RESULT = "result"
    ERROR = "error"


@dataclass(frozen=True)
class StartCapture:
    pass


@dataclass(frozen=True)
class PageCaptured:
    page: CapturedPage


@dataclass(frozen=True)
class PageDiscarded:
    index: int


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class ExtractionSucceeded:
    document: BudgetDocument


@dataclass(frozen=True)
class ExtractionFailed:
    error: ExtractionError


@dataclass(frozen=True)
class SelectFromHistory:
    document: BudgetDocument


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[
    StartCapture,
    PageCaptured,
    PageDiscarded,
    Submit,
    ExtractionSucceeded,
    ExtractionFailed,
    SelectFromHistory,
    Reset,
]


class InvalidTransition(Exception):
    def __init__(self, state: AppState, event: Event) -> None:
        super().__init__(f"{type(event).__name__} is not allowed while {state.value}")
        self.state = state
        self.event = event


@dataclass
class Session:
    """Single-user session; only one extraction may be in flight."""

    state: AppState = AppState.IDLE
    pages: List[CapturedPage] = field(default_factory=list)
    document: Optional[BudgetDocument] = None
    error: Optional[ExtractionError] = None

    @property
    def busy(self) -> bool:
        return self.state is AppState.PROCESSING

    def snapshot_pages(self) -> Tuple[CapturedPage, ...]:
        return tuple(self.pages)

    def dispatch(self, event: Event) -> AppState:
        previous = self.state
        self.state = self._transition(event)
        LOG.debug(f"{previous.value} --{type(event).__name__}--> {self.state.value}")
        return self.state

    def _transition(self, event: Event) -> AppState:
        s = self.state

        if s is AppState.PROCESSING:
            if isinstance(event, ExtractionSucceeded):
                self.pages.clear()
                self.document = event.document
                self.error = None
                return AppState.RESULT
            if isinstance(event, ExtractionFailed):
                # Back to the pre-capture state; nothing partial is kept.
                self.pages.clear()
                self.document = None
                self.error = event.error
                return AppState.ERROR
            raise InvalidTransition(s, event)

        if isinstance(event, Reset):
            self.pages.clear()
            self.document = None
            self.error = None
            return AppState.IDLE

        if isinstance(event, SelectFromHistory):
            self.pages.clear()
            self.document = event.document
            self.error = None
            return AppState.RESULT

        if isinstance(event, StartCapture):
            if s in (AppState.RESULT, AppState.ERROR):
                self.pages.clear()
                self.document = None
                self.error = None
            return AppState.REVIEWING if self.pages else AppState.CAPTURING

        if isinstance(event, PageCaptured):
            if s in (AppState.RESULT, AppState.ERROR):
                self.pages.clear()
                self.document = None
                self.error = None
            self.pages.append(event.page)
            return AppState.REVIEWING

        if isinstance(event, PageDiscarded):
            if s is not AppState.REVIEWING or not 0 <= event.index < len(self.pages):
                raise InvalidTransition(s, event)
            del self.pages[event.index]
            return AppState.REVIEWING if self.pages else AppState.CAPTURING

        if isinstance(event, Submit):
            if s is not AppState.REVIEWING or not self.pages:
                raise InvalidTransition(s, event)
            return AppState.PROCESSING

        raise InvalidTransition(s, event)

    def as_dict(self) -> dict:
        return {
            "state": self.state.value,
            "pages": len(self.pages),
            "document_id": self.document.id if self.document else None,
            "error": self.error.as_dict() if self.error else None,
        }
