"""Load diagram markup from .mmd files, Markdown fences, or stdin."""

from __future__ import annotations

from pathlib import Path

from markdown_it import MarkdownIt

MARKDOWN_SUFFIXES = {".md", ".markdown"}
MERMAID_FENCE_INFOS = {"mermaid", "mmd"}


class MarkupSourceError(ValueError):
    """The file exists but holds no readable diagram markup."""


def prepare_mermaid_source(code: str) -> str:
    """Normalize fenced Mermaid content (line endings, outer blank lines)."""
    return code.replace("\r\n", "\n").strip("\n")


def extract_mermaid_fence(markdown_text: str) -> str | None:
    """Return the first ```mermaid fence in a Markdown document, if any."""
    tokens = MarkdownIt("commonmark").parse(markdown_text)
    for token in tokens:
        if token.type != "fence":
            continue
        info_words = (token.info or "").split(maxsplit=1)
        if info_words and info_words[0].lower() in MERMAID_FENCE_INFOS:
            return prepare_mermaid_source(token.content)
    return None


def load_markup(path: Path) -> str:
    """Read diagram markup from a file; Markdown files contribute their first mermaid fence.

    Bytes are decoded strictly and line endings are left as they are, so a
    diagnostic always shows the file's markup exactly.
    """
    try:
        text = path.read_bytes().decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MarkupSourceError(f"{path.name} is not valid UTF-8 (byte {exc.start})") from exc
    if path.suffix.lower() not in MARKDOWN_SUFFIXES:
        return text
    markup = extract_mermaid_fence(text)
    if markup is None:
        raise MarkupSourceError(f"No mermaid code block found in {path.name}")
    return markup
