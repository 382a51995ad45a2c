"""Mermaid render engine adapter backed by the Mermaid CLI (`mmdc`)."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Protocol

log = logging.getLogger(__name__)

DEFAULT_RENDER_TIMEOUT_SECONDS = 20.0
DEFAULT_THEME_VARIABLES: Mapping[str, str] = MappingProxyType({
    "primaryColor": "#e0e7ff",
    "primaryTextColor": "#1e1b4b",
    "primaryBorderColor": "#4338ca",
    "lineColor": "#64748b",
    "secondaryColor": "#f3e8ff",
    "tertiaryColor": "#fff",
})


class EngineRenderError(RuntimeError):
    """The engine rejected the markup or could not produce an SVG."""


class EngineUnavailableError(EngineRenderError):
    """The Mermaid CLI is not installed or cannot be started."""


@dataclass(frozen=True)
class VisualArtifact:
    """SVG produced from exactly one markup source."""

    svg: str
    diagram_id: str
    source: str


@dataclass(frozen=True)
class EngineConfig:
    theme: str = "base"
    theme_variables: Mapping[str, str] = field(default_factory=lambda: DEFAULT_THEME_VARIABLES)
    security_level: str = "loose"
    background: str = "transparent"
    # QtSvg cannot draw <foreignObject>, so labels must be plain SVG text.
    html_labels: bool = False
    timeout_seconds: float = DEFAULT_RENDER_TIMEOUT_SECONDS
    mmdc_path: Path | None = None

    def __post_init__(self) -> None:
        # Snapshot caller dicts so later edits cannot change a built config.
        object.__setattr__(self, "theme_variables", MappingProxyType(dict(self.theme_variables)))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from MERMAIDVIEW_* environment variables."""
        theme = os.environ.get("MERMAIDVIEW_THEME", "").strip() or "base"
        try:
            timeout = float(os.environ.get("MERMAIDVIEW_RENDER_TIMEOUT", DEFAULT_RENDER_TIMEOUT_SECONDS))
        except ValueError:
            timeout = DEFAULT_RENDER_TIMEOUT_SECONDS
        if timeout <= 0:
            timeout = DEFAULT_RENDER_TIMEOUT_SECONDS
        mmdc_value = os.environ.get("MERMAIDVIEW_MMDC", "").strip()
        mmdc_path = Path(mmdc_value).expanduser() if mmdc_value else None
        return cls(theme=theme, timeout_seconds=timeout, mmdc_path=mmdc_path)

    def to_mermaid_config(self) -> dict:
        """Return the JSON document passed to `mmdc --configFile`."""
        return {
            "startOnLoad": False,
            "theme": self.theme,
            "themeVariables": dict(self.theme_variables),
            "securityLevel": self.security_level,
            "htmlLabels": self.html_labels,
            "flowchart": {"htmlLabels": self.html_labels},
        }


class RenderEngine(Protocol):
    def render(self, markup: str, diagram_id: str) -> VisualArtifact: ...


def _extract_mermaid_error_details(stderr_text: str) -> str:
    """Condense Mermaid CLI stderr (node stack traces included) into a readable message."""
    raw = (stderr_text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = [line.rstrip() for line in raw.split("\n") if line.strip()]
    if not lines:
        return "unknown error"

    # Typical shape:
    # Error: Parse error on line 1:
    # graph TD; A--
    # -------------^
    # Expecting 'SEMI', ... got 'EOF'
    #     at Parser.parseError (...)
    kept: list[str] = []
    for line in lines:
        if line.lstrip().startswith("at "):
            break
        kept.append(line)
    if not kept:
        kept = lines[:1]
    if kept[0].startswith("Error: "):
        kept[0] = kept[0][len("Error: ") :]
    return "\n".join(kept[:8])


class MermaidCliEngine:
    """Render Mermaid markup to SVG by running `mmdc` once per diagram."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self._mmdc_path = self._resolve_mmdc_path()
        self._setup_issue = self._mmdc_setup_error()
        # Written once here and only read by render calls afterwards.
        self._config_dir = tempfile.TemporaryDirectory(prefix="mermaidview-")
        self._config_file = Path(self._config_dir.name) / "mermaid-config.json"
        self._config_file.write_text(json.dumps(self.config.to_mermaid_config()), encoding="utf-8")
        if self._setup_issue is not None:
            log.warning("Mermaid engine unavailable: %s", self._setup_issue)
        else:
            log.info("Mermaid engine initialized with %s (theme=%s)", self._mmdc_path, self.config.theme)

    def _resolve_mmdc_path(self) -> Path | None:
        """Locate the Mermaid CLI from config, local node_modules, or PATH."""
        candidates: list[Path] = []
        if self.config.mmdc_path is not None:
            candidates.append(self.config.mmdc_path)
        app_dir = Path(__file__).resolve().parent
        candidates.extend(
            [
                app_dir / "node_modules" / ".bin" / "mmdc",
                app_dir.parent / "node_modules" / ".bin" / "mmdc",
                Path.cwd() / "node_modules" / ".bin" / "mmdc",
            ]
        )
        for candidate in candidates:
            try:
                if candidate.is_file():
                    return candidate.resolve()
            except OSError:
                continue
        found = shutil.which("mmdc")
        return Path(found) if found else None

    def _mmdc_setup_error(self) -> str | None:
        if self._mmdc_path is None:
            return "mmdc not found (install @mermaid-js/mermaid-cli or set MERMAIDVIEW_MMDC)"
        return None

    def setup_issue(self) -> str | None:
        """Return why rendering cannot work, or None when the CLI was found."""
        return self._setup_issue

    def render(self, markup: str, diagram_id: str) -> VisualArtifact:
        if self._setup_issue is not None:
            raise EngineUnavailableError(self._setup_issue)

        with tempfile.TemporaryDirectory(prefix=f"{diagram_id}-") as work_dir:
            input_path = Path(work_dir) / f"{diagram_id}.mmd"
            output_path = Path(work_dir) / f"{diagram_id}.svg"
            input_path.write_text(markup, encoding="utf-8")
            command = [
                str(self._mmdc_path),
                "--input",
                str(input_path),
                "--output",
                str(output_path),
                "--configFile",
                str(self._config_file),
                "--backgroundColor",
                self.config.background,
                "--svgId",
                diagram_id,
                "--quiet",
            ]
            log.debug("Running %s", " ".join(command))

            try:
                result = subprocess.run(
                    command,
                    text=True,
                    capture_output=True,
                    check=False,
                    timeout=self.config.timeout_seconds,
                )
            except subprocess.TimeoutExpired as exc:
                raise EngineRenderError("Mermaid render timed out") from exc
            except OSError as exc:
                raise EngineUnavailableError(f"Could not start mmdc: {exc}") from exc

            if result.returncode != 0:
                details = _extract_mermaid_error_details(result.stderr or result.stdout or "")
                raise EngineRenderError(details)

            try:
                svg_text = output_path.read_text(encoding="utf-8").strip()
            except OSError as exc:
                raise EngineRenderError("Mermaid CLI did not write SVG output") from exc

        if "<svg" not in svg_text.casefold():
            raise EngineRenderError("Mermaid CLI did not return SVG output")
        return VisualArtifact(svg=svg_text, diagram_id=diagram_id, source=markup)

    def close(self) -> None:
        self._config_dir.cleanup()
