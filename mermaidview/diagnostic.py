"""Error view showing the failure message and the raw markup for manual repair."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from typing import Callable

from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QClipboard, QFontDatabase
from PySide6.QtWidgets import (
    QApplication,
    QFrame,
    QHBoxLayout,
    QLabel,
    QPlainTextEdit,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from mermaidview.lifecycle import RenderDiagnostic

log = logging.getLogger(__name__)

RECOVERY_HINT = (
    "The diagram code contains syntax errors. Fix the source and refresh, "
    "or copy the code below to correct it manually."
)


CLIPBOARD_COMMANDS = (
    ("WAYLAND_DISPLAY", ["wl-copy"]),
    ("DISPLAY", ["xclip", "-selection", "clipboard"]),
    ("DISPLAY", ["xsel", "--clipboard", "--input"]),
)


def _clipboard_command() -> list[str] | None:
    for display_var, command in CLIPBOARD_COMMANDS:
        if os.environ.get(display_var) and shutil.which(command[0]):
            return command
    return None


def set_plain_text_clipboard(text: str) -> str:
    """Copy `text` through Qt, then mirror it with the session's clipboard tool.

    Returns the name of the tool that also received the text, or "qt" when
    only the Qt clipboard did.
    """
    clipboard = QApplication.clipboard()
    clipboard.setText(text, QClipboard.Mode.Clipboard)
    if clipboard.supportsSelection():
        clipboard.setText(text, QClipboard.Mode.Selection)
    QApplication.processEvents()

    command = _clipboard_command()
    if command is None:
        return "qt"
    try:
        # The tools keep serving the selection after exit; never hold their pipes.
        completed = subprocess.run(
            command,
            input=text,
            text=True,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        log.debug("Clipboard fallback %s failed: %s", command[0], exc)
        return "qt"
    if completed.returncode != 0:
        log.debug("Clipboard fallback %s exited with %d", command[0], completed.returncode)
        return "qt"
    return command[0]


class DiagnosticView(QWidget):
    copied = Signal(str)

    def __init__(
        self,
        parent: QWidget | None = None,
        clipboard_writer: Callable[[str], object] = set_plain_text_clipboard,
    ):
        super().__init__(parent)
        self.diagnostic: RenderDiagnostic | None = None
        self._clipboard_writer = clipboard_writer

        title = QLabel("Visualization Error")
        title.setObjectName("mermaidview-diagnostic-title")
        title.setStyleSheet("QLabel#mermaidview-diagnostic-title { color: #991b1b; font-size: 15px; font-weight: 600; }")
        self.message_label = QLabel()
        self.message_label.setTextFormat(Qt.TextFormat.PlainText)
        self.message_label.setWordWrap(True)
        self.message_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        self.message_label.setStyleSheet("color: #dc2626;")
        hint = QLabel(RECOVERY_HINT)
        hint.setWordWrap(True)
        hint.setStyleSheet("color: #475569;")

        code_header = QLabel("Raw Mermaid Code")
        code_header.setStyleSheet("color: #b91c1c; font-weight: 600;")
        self.copy_btn = QPushButton("Copy")
        self.copy_btn.setToolTip("Copy the raw diagram code to the clipboard")
        self.copy_btn.clicked.connect(self.copy_markup)
        self.copy_status = QLabel("")
        self.copy_status.setStyleSheet("color: #15803d;")

        header_row = QHBoxLayout()
        header_row.addWidget(code_header)
        header_row.addStretch(1)
        header_row.addWidget(self.copy_status)
        header_row.addWidget(self.copy_btn)

        self.source_view = QPlainTextEdit()
        self.source_view.setReadOnly(True)
        self.source_view.setLineWrapMode(QPlainTextEdit.LineWrapMode.NoWrap)
        self.source_view.setFont(QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont))

        frame = QFrame()
        frame.setObjectName("mermaidview-diagnostic-frame")
        frame.setStyleSheet(
            """
            QFrame#mermaidview-diagnostic-frame {
                background-color: #fef2f2;
                border: 1px solid #fecaca;
                border-radius: 10px;
            }
            """
        )
        frame_layout = QVBoxLayout(frame)
        frame_layout.addWidget(title)
        frame_layout.addWidget(self.message_label)
        frame_layout.addWidget(hint)
        frame_layout.addLayout(header_row)
        frame_layout.addWidget(self.source_view, 1)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 24, 24, 24)
        layout.addWidget(frame)

    def show_diagnostic(self, diagnostic: RenderDiagnostic) -> None:
        self.diagnostic = diagnostic
        self.message_label.setText(diagnostic.message)
        # setPlainText keeps whitespace and line breaks verbatim.
        self.source_view.setPlainText(diagnostic.source)
        self.copy_status.setText("")

    def source_text(self) -> str:
        return self.diagnostic.source if self.diagnostic is not None else ""

    def copy_markup(self) -> None:
        """Place the exact failing markup on the clipboard and confirm it."""
        if self.diagnostic is None:
            return
        text = self.diagnostic.source
        self._clipboard_writer(text)
        self.copy_status.setText("Copied to clipboard")
        self.copied.emit(text)
