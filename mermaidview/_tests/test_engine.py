from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from mermaidview._tests._helpers import MALFORMED_MARKUP, SAMPLE_SVG, VALID_MARKUP
from mermaidview import engine as engine_module
from mermaidview.engine import (
    DEFAULT_RENDER_TIMEOUT_SECONDS,
    EngineConfig,
    EngineRenderError,
    EngineUnavailableError,
    MermaidCliEngine,
    _extract_mermaid_error_details,
)

MMDC_PARSE_ERROR = """Error: Parse error on line 1:
graph TD; A--
-------------^
Expecting 'AMP', 'COLON', got 'EOF'
Parser3.parseError (file:///usr/lib/node_modules/mermaid.js:1:1)
    at Parser3.parse (file:///usr/lib/node_modules/mermaid.js:2:2)
    at Object.render (file:///usr/lib/node_modules/mermaid.js:3:3)
"""


@pytest.fixture
def fake_mmdc(tmp_path: Path) -> Path:
    mmdc = tmp_path / "mmdc"
    mmdc.write_text("#!/bin/sh\n", encoding="utf-8")
    return mmdc


@pytest.fixture
def cli_engine(fake_mmdc: Path):
    eng = MermaidCliEngine(EngineConfig(mmdc_path=fake_mmdc))
    yield eng
    eng.close()


def _arg(command: list[str], flag: str) -> str:
    return command[command.index(flag) + 1]


def test_default_config_matches_diagram_theme() -> None:
    config = EngineConfig().to_mermaid_config()
    assert config["theme"] == "base"
    assert config["securityLevel"] == "loose"
    assert config["startOnLoad"] is False
    assert config["themeVariables"]["primaryColor"] == "#e0e7ff"
    assert config["themeVariables"]["lineColor"] == "#64748b"
    assert config["themeVariables"]["secondaryColor"] == "#f3e8ff"
    assert config["flowchart"] == {"htmlLabels": False}


def test_theme_variables_are_read_only() -> None:
    config = EngineConfig()
    with pytest.raises(TypeError):
        config.theme_variables["primaryColor"] = "#000000"
    assert EngineConfig().theme_variables["primaryColor"] == "#e0e7ff"


def test_theme_variables_copy_caller_dict() -> None:
    variables = {"primaryColor": "#111111"}
    config = EngineConfig(theme_variables=variables)
    variables["primaryColor"] = "#222222"
    assert config.theme_variables["primaryColor"] == "#111111"
    with pytest.raises(TypeError):
        config.theme_variables["lineColor"] = "#333333"
    # The JSON document still gets a plain dict.
    assert config.to_mermaid_config()["themeVariables"] == {"primaryColor": "#111111"}
    json.dumps(config.to_mermaid_config())


def test_config_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("MERMAIDVIEW_THEME", "dark")
    monkeypatch.setenv("MERMAIDVIEW_RENDER_TIMEOUT", "7.5")
    monkeypatch.setenv("MERMAIDVIEW_MMDC", str(tmp_path / "mmdc"))
    config = EngineConfig.from_env()
    assert config.theme == "dark"
    assert config.timeout_seconds == 7.5
    assert config.mmdc_path == tmp_path / "mmdc"


@pytest.mark.parametrize("raw", ["soon", "0", "-3"])
def test_config_from_env_rejects_bad_timeouts(monkeypatch, raw: str) -> None:
    monkeypatch.setenv("MERMAIDVIEW_RENDER_TIMEOUT", raw)
    assert EngineConfig.from_env().timeout_seconds == DEFAULT_RENDER_TIMEOUT_SECONDS


def test_error_details_drop_stack_frames() -> None:
    details = _extract_mermaid_error_details(MMDC_PARSE_ERROR)
    assert details.startswith("Parse error on line 1:")
    assert "graph TD; A--" in details
    assert " at " not in details


def test_error_details_for_empty_stderr() -> None:
    assert _extract_mermaid_error_details("") == "unknown error"


def test_config_file_written_once_at_init(cli_engine: MermaidCliEngine) -> None:
    written = json.loads(cli_engine._config_file.read_text(encoding="utf-8"))
    assert written == cli_engine.config.to_mermaid_config()
    assert cli_engine.setup_issue() is None


def test_render_runs_mmdc_with_fresh_id(monkeypatch, cli_engine: MermaidCliEngine, fake_mmdc: Path) -> None:
    seen: list[list[str]] = []

    def fake_run(command, **kwargs):
        seen.append(command)
        assert Path(_arg(command, "--input")).read_text(encoding="utf-8") == VALID_MARKUP
        Path(_arg(command, "--output")).write_text(SAMPLE_SVG, encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    artifact = cli_engine.render(VALID_MARKUP, "mermaid-123-1")

    assert artifact.svg == SAMPLE_SVG
    assert artifact.diagram_id == "mermaid-123-1"
    assert artifact.source == VALID_MARKUP
    command = seen[0]
    assert command[0] == str(fake_mmdc.resolve())
    assert _arg(command, "--svgId") == "mermaid-123-1"
    assert _arg(command, "--configFile") == str(cli_engine._config_file)
    assert _arg(command, "--backgroundColor") == "transparent"


def test_render_reports_parse_errors(monkeypatch, cli_engine: MermaidCliEngine) -> None:
    def fake_run(command, **kwargs):
        return subprocess.CompletedProcess(command, 1, stdout="", stderr=MMDC_PARSE_ERROR)

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    with pytest.raises(EngineRenderError, match="Parse error on line 1"):
        cli_engine.render(MALFORMED_MARKUP, "mermaid-1-1")


def test_render_reports_timeouts(monkeypatch, cli_engine: MermaidCliEngine) -> None:
    def fake_run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout"))

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    with pytest.raises(EngineRenderError, match="timed out"):
        cli_engine.render(VALID_MARKUP, "mermaid-1-1")


def test_render_rejects_non_svg_output(monkeypatch, cli_engine: MermaidCliEngine) -> None:
    def fake_run(command, **kwargs):
        Path(_arg(command, "--output")).write_text("<html></html>", encoding="utf-8")
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    with pytest.raises(EngineRenderError, match="did not return SVG"):
        cli_engine.render(VALID_MARKUP, "mermaid-1-1")


def test_render_without_output_file(monkeypatch, cli_engine: MermaidCliEngine) -> None:
    def fake_run(command, **kwargs):
        return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

    monkeypatch.setattr(engine_module.subprocess, "run", fake_run)
    with pytest.raises(EngineRenderError, match="did not write SVG"):
        cli_engine.render(VALID_MARKUP, "mermaid-1-1")


def test_missing_mmdc_is_reported(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(engine_module.shutil, "which", lambda _name: None)
    eng = MermaidCliEngine(EngineConfig(mmdc_path=tmp_path / "missing-mmdc"))
    try:
        assert "mmdc not found" in eng.setup_issue()
        with pytest.raises(EngineUnavailableError):
            eng.render(VALID_MARKUP, "mermaid-1-1")
    finally:
        eng.close()
