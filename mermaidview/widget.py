"""Embeddable Mermaid diagram widget: placeholder, diagnostic view or viewport."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import QLabel, QStackedWidget, QVBoxLayout, QWidget

from mermaidview.diagnostic import DiagnosticView, set_plain_text_clipboard
from mermaidview.engine import RenderEngine
from mermaidview.lifecycle import DiagramRenderController, RenderDiagnostic, ViewKind, ViewState
from mermaidview.viewport import DiagramViewport

log = logging.getLogger(__name__)

EMPTY_PLACEHOLDER_TEXT = "No diagram data available."


class PresentationPage(str, Enum):
    PLACEHOLDER = "placeholder"
    DIAGNOSTIC = "diagnostic"
    VIEWPORT = "viewport"


def select_page(state: ViewState) -> PresentationPage | None:
    """Map a view state to the page to show; None keeps the current page."""
    if state.kind is ViewKind.EMPTY:
        return PresentationPage.PLACEHOLDER
    if state.kind is ViewKind.FAILED:
        return PresentationPage.DIAGNOSTIC
    if state.kind is ViewKind.READY:
        return PresentationPage.VIEWPORT
    return None


class MermaidDiagramWidget(QWidget):
    """Render markup asynchronously and present the settled result."""

    pageChanged = Signal(str)

    def __init__(
        self,
        engine: RenderEngine,
        on_error: Callable[[RenderDiagnostic], None] | None = None,
        parent: QWidget | None = None,
        clipboard_writer: Callable[[str], object] = set_plain_text_clipboard,
    ):
        super().__init__(parent)
        self.controller = DiagramRenderController(engine, on_error=on_error, parent=self)
        self.controller.stateChanged.connect(self._on_state_changed)

        self.placeholder = QLabel(EMPTY_PLACEHOLDER_TEXT)
        self.placeholder.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.placeholder.setStyleSheet(
            "QLabel { color: #94a3b8; background: #f8fafc; border: 2px dashed #e2e8f0; border-radius: 8px; }"
        )
        self.diagnostic_view = DiagnosticView(clipboard_writer=clipboard_writer)
        self.viewport = DiagramViewport()

        self.stack = QStackedWidget()
        self._pages = {
            PresentationPage.PLACEHOLDER: self.placeholder,
            PresentationPage.DIAGNOSTIC: self.diagnostic_view,
            PresentationPage.VIEWPORT: self.viewport,
        }
        for page in self._pages.values():
            self.stack.addWidget(page)

        self.busy_label = QLabel("Rendering diagram...")
        self.busy_label.setStyleSheet("color: #64748b; padding: 2px 6px;")
        self.busy_label.hide()

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addWidget(self.busy_label)
        layout.addWidget(self.stack, 1)

        self._current_page = PresentationPage.PLACEHOLDER
        self.stack.setCurrentWidget(self.placeholder)

    @property
    def state(self) -> ViewState:
        return self.controller.state

    @property
    def current_page(self) -> PresentationPage:
        return self._current_page

    def set_markup(self, markup: str | None) -> None:
        self.controller.submit(markup)

    def set_error_callback(self, callback: Callable[[RenderDiagnostic], None] | None) -> None:
        self.controller.on_error = callback

    def _on_state_changed(self, state: ViewState) -> None:
        self.busy_label.setVisible(state.kind is ViewKind.RENDERING)
        page = select_page(state)
        if page is None:
            return
        if page is PresentationPage.VIEWPORT and state.artifact is not None:
            if not self.viewport.install(state.artifact):
                log.warning("Qt could not parse SVG for %s", state.artifact.diagram_id)
        elif page is PresentationPage.DIAGNOSTIC and state.diagnostic is not None:
            self.diagnostic_view.show_diagnostic(state.diagnostic)
        self.stack.setCurrentWidget(self._pages[page])
        if page is not self._current_page:
            self._current_page = page
            self.pageChanged.emit(page.value)
