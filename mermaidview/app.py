#!/usr/bin/env python3
"""mermaidview: desktop viewer for a single Mermaid diagram."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from PySide6.QtCore import QTimer
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QApplication, QMainWindow

from mermaidview.config import config_file_path, load_last_path, save_last_path
from mermaidview.engine import EngineConfig, MermaidCliEngine, RenderEngine
from mermaidview.lifecycle import RenderDiagnostic, RenderFailure, RenderRequest, RenderResult
from mermaidview.logging_config import setup_logging
from mermaidview.source import MarkupSourceError, load_markup
from mermaidview.widget import MermaidDiagramWidget

log = logging.getLogger(__name__)

FILE_WATCH_INTERVAL_MS = 1200


class MermaidViewWindow(QMainWindow):
    """Host window: feeds markup from a file or text into the diagram widget."""

    def __init__(self, engine: RenderEngine, config_path: Path | None = None):
        super().__init__()
        self.engine = engine
        self.config_path = config_path
        self.current_file: Path | None = None
        self.current_markup: str | None = None
        self._current_signature: tuple[int, int] | None = None

        self.diagram = MermaidDiagramWidget(engine, on_error=self._on_render_error, parent=self)
        self.diagram.controller.renderStarted.connect(self._on_render_started)
        self.diagram.controller.renderSettled.connect(self._on_render_settled)
        self.diagram.diagnostic_view.copied.connect(self._on_markup_copied)
        self.setCentralWidget(self.diagram)
        self.resize(1000, 720)

        self._default_status_text = "Ready"
        self.statusBar().showMessage(self._default_status_text)
        self._file_change_watch_timer = QTimer(self)
        self._file_change_watch_timer.setInterval(FILE_WATCH_INTERVAL_MS)
        self._file_change_watch_timer.timeout.connect(self._on_file_change_watch_tick)
        self._file_change_watch_timer.start()
        self._add_shortcuts()
        self._update_window_title()

    def _add_shortcuts(self) -> None:
        """Register window-level keyboard shortcuts."""
        refresh_action = QAction("Refresh", self)
        refresh_action.setShortcut("F5")
        refresh_action.triggered.connect(self._refresh_current_diagram)
        self.addAction(refresh_action)

        zoom_in_action = QAction("Zoom in", self)
        zoom_in_action.setShortcut("Ctrl++")
        zoom_in_action.triggered.connect(self.diagram.viewport.zoom_in)
        self.addAction(zoom_in_action)

        zoom_out_action = QAction("Zoom out", self)
        zoom_out_action.setShortcut("Ctrl+-")
        zoom_out_action.triggered.connect(self.diagram.viewport.zoom_out)
        self.addAction(zoom_out_action)

        fit_action = QAction("Fit diagram", self)
        fit_action.setShortcut("Ctrl+0")
        fit_action.triggered.connect(self.diagram.viewport.reset_to_fit)
        self.addAction(fit_action)

    def _update_window_title(self) -> None:
        name = self.current_file.name if self.current_file is not None else "untitled"
        self.setWindowTitle(f"mermaidview - {name}")

    def show_markup(self, markup: str | None) -> None:
        """Render text that did not come from a watched file (stdin, embedding hosts)."""
        self.current_file = None
        self._current_signature = None
        self.current_markup = markup
        self._update_window_title()
        self.diagram.set_markup(markup)

    def open_file(self, path: Path) -> bool:
        try:
            resolved = path.resolve()
            stat = resolved.stat()
            markup = load_markup(resolved)
        except (OSError, MarkupSourceError) as exc:
            log.error("Could not load %s: %s", path, exc)
            self.statusBar().showMessage(f"Could not load {path.name}: {exc}", 5000)
            return False

        self.current_file = resolved
        self._current_signature = (int(stat.st_mtime_ns), int(stat.st_size))
        self.current_markup = markup
        self._update_window_title()
        self.diagram.set_markup(markup)
        return True

    def _refresh_current_diagram(self, _checked: bool = False, *, reason: str | None = None) -> None:
        """Re-submit the current markup; identical text still triggers a new render."""
        if self.current_file is not None:
            if not self.open_file(self.current_file):
                return
        else:
            self.diagram.set_markup(self.current_markup)
        if reason:
            self.statusBar().showMessage(f"Auto-refreshed diagram ({reason})", 4500)

    def _on_file_change_watch_tick(self) -> None:
        """Auto-refresh when the watched file changes on disk."""
        if self.current_file is None:
            return
        try:
            stat = self.current_file.stat()
        except OSError:
            # File may be temporarily inaccessible while external tools save.
            return
        current_sig = (int(stat.st_mtime_ns), int(stat.st_size))
        if current_sig == self._current_signature:
            return
        self._current_signature = current_sig
        self._refresh_current_diagram(reason="file changed on disk")

    def _on_render_started(self, request: RenderRequest) -> None:
        self.statusBar().showMessage("Rendering diagram...")

    def _on_render_settled(self, result: RenderResult) -> None:
        if isinstance(result, RenderFailure):
            self.statusBar().showMessage("Diagram render failed", 5000)
        else:
            self.statusBar().showMessage("Diagram rendered", 3000)

    def _on_render_error(self, diagnostic: RenderDiagnostic) -> None:
        log.info("Diagram error shown to user: %s", diagnostic.message.splitlines()[0] if diagnostic.message else "")

    def _on_markup_copied(self, _text: str) -> None:
        self.statusBar().showMessage("Mermaid code copied to clipboard", 4000)

    def closeEvent(self, event) -> None:  # noqa: N802
        self._file_change_watch_timer.stop()
        if self.current_file is not None and self.config_path is not None:
            save_last_path(self.current_file, self.config_path)
        self.diagram.controller.shutdown()
        super().closeEvent(event)


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="mermaidview",
        description="Render a Mermaid diagram into a pannable, zoomable window.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Diagram file (.mmd, or .md with a mermaid block); '-' reads stdin "
        "(default: last opened file from ~/.mermaidview.cfg).",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)

    markup: str | None = None
    path: Path | None = None
    if args.path == "-":
        markup = sys.stdin.read()
    elif args.path is not None:
        path = Path(args.path).expanduser()
        if not path.exists():
            print(f"Path does not exist: {path}", file=sys.stderr)
            return 2
        if not path.is_file():
            print(f"Path is not a file: {path}", file=sys.stderr)
            return 2
    else:
        path = load_last_path()

    app = QApplication(sys.argv)
    app.setApplicationName("mermaidview")
    engine = MermaidCliEngine(EngineConfig.from_env())
    window = MermaidViewWindow(engine, config_file_path())
    if path is not None:
        window.open_file(path)
    elif markup is not None:
        window.show_markup(markup)
    window.show()
    try:
        return app.exec()
    finally:
        engine.close()


if __name__ == "__main__":
    raise SystemExit(main())
