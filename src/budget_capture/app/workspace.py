from __future__ import annotations

from typing import Optional, Sequence, Tuple

from ..capture import CapturedPage
from ..config import Branding
from ..domain.models import BudgetDocument, HistoryEntry
from ..extraction import BudgetExtractionService, ExtractionError, classify_error
from ..history import HistoryStore
from ..logging import get_logger
from ..render import render
from .state import (
    ExtractionFailed,
    ExtractionSucceeded,
    PageCaptured,
    PageDiscarded,
    Reset,
    SelectFromHistory,
    Session,
    StartCapture,
    Submit,
)

LOG = get_logger("app-workspace")


class BudgetWorkspace:
    """Wires the session, the extraction service, history and the renderers."""

    def __init__(
        self,
        service: BudgetExtractionService,
        history: HistoryStore,
        branding: Optional[Branding] = None,
        *,
        session: Optional[Session] = None,
    ) -> None:
        self.service = service
        self.history = history
        self.branding = branding or Branding()
        self.session = session or Session()

    # ---- capture ----
    def start_capture(self) -> None:
        self.session.dispatch(StartCapture())

    def add_page(self, page: CapturedPage) -> int:
        self.session.dispatch(PageCaptured(page))
        return len(self.session.pages)

    def discard_page(self, index: int) -> int:
        self.session.dispatch(PageDiscarded(index))
        return len(self.session.pages)

    def reset(self) -> None:
        self.session.dispatch(Reset())

    # ---- processing ----
    def begin_processing(self) -> Tuple[CapturedPage, ...]:
        """Enter PROCESSING and hand back the pages to extract."""
        self.session.dispatch(Submit())
        return self.session.snapshot_pages()

    def run_extraction(self, pages: Sequence[CapturedPage]) -> BudgetDocument:
        return self.service.extract(pages)

    def finish_processing(self, *, document: Optional[BudgetDocument] = None, error: Optional[ExtractionError] = None) -> Optional[HistoryEntry]:
        if error is not None:
            self.session.dispatch(ExtractionFailed(error))
            return None
        if document is None:
            raise ValueError("finish_processing needs a document or an error")
        self.session.dispatch(ExtractionSucceeded(document))
        return self.history.append(document)

    def fail_processing(self, exc: Exception) -> ExtractionError:
        """Leave PROCESSING after any failure; returns the classified error."""
        err = classify_error(exc)
        self.finish_processing(error=err)
        return err

    def process(self) -> BudgetDocument:
        """Blocking submit -> extract -> record. Raises ExtractionError."""
        pages = self.begin_processing()
        try:
            document = self.run_extraction(pages)
        except Exception as exc:
            err = self.fail_processing(exc)
            if err is exc:
                raise
            raise err from exc
        self.finish_processing(document=document)
        return document

    def extract_pages(self, pages: Sequence[CapturedPage]) -> BudgetDocument:
        for page in pages:
            self.add_page(page)
        return self.process()

    # ---- history & export ----
    def select(self, entry_id: str) -> Optional[BudgetDocument]:
        entry = self.history.get(entry_id)
        if entry is None:
            return None
        self.session.dispatch(SelectFromHistory(entry.document))
        return entry.document

    def remove(self, entry_id: str) -> bool:
        removed = self.history.remove(entry_id)
        current = self.session.document
        if removed and current is not None and current.id == entry_id and not self.session.busy:
            self.session.dispatch(Reset())
        return removed

    def find_document(self, document_id: str) -> Optional[BudgetDocument]:
        current = self.session.document
        if current is not None and current.id == document_id:
            return current
        entry = self.history.get(document_id)
        return entry.document if entry else None

    def export(self, document: BudgetDocument, fmt: str) -> Tuple[bytes, str, str]:
        return render(document, self.branding, fmt)
