from __future__ import annotations

from mermaidview._tests._helpers import MALFORMED_MARKUP, VALID_MARKUP, FakeEngine
from mermaidview.engine import VisualArtifact
from mermaidview.lifecycle import (
    RenderDiagnostic,
    RenderFailure,
    RenderLifecycle,
    RenderSuccess,
    ViewKind,
    make_diagram_id,
    render_markup,
)


def _artifact(source: str, diagram_id: str = "mermaid-1") -> VisualArtifact:
    return VisualArtifact(svg="<svg/>", diagram_id=diagram_id, source=source)


def test_empty_markup_yields_empty_state_without_request() -> None:
    lifecycle = RenderLifecycle()
    assert lifecycle.submit("") is None
    assert lifecycle.state.kind is ViewKind.EMPTY
    assert lifecycle.submit(None) is None
    assert lifecycle.state.kind is ViewKind.EMPTY


def test_submit_issues_increasing_tokens_and_unique_ids() -> None:
    lifecycle = RenderLifecycle()
    first = lifecycle.submit(VALID_MARKUP)
    second = lifecycle.submit(VALID_MARKUP)
    assert first is not None and second is not None
    assert second.token > first.token
    assert first.diagram_id != second.diagram_id
    assert lifecycle.state.kind is ViewKind.RENDERING
    assert lifecycle.state.source == VALID_MARKUP


def test_success_moves_to_ready() -> None:
    lifecycle = RenderLifecycle()
    request = lifecycle.submit(VALID_MARKUP)
    applied = lifecycle.settle(request, RenderSuccess(_artifact(VALID_MARKUP, request.diagram_id)))
    assert applied is True
    assert lifecycle.state.kind is ViewKind.READY
    assert lifecycle.state.artifact.source == VALID_MARKUP


def test_failure_moves_to_failed_and_notifies_once() -> None:
    errors: list[RenderDiagnostic] = []
    lifecycle = RenderLifecycle(on_error=errors.append)
    request = lifecycle.submit(MALFORMED_MARKUP)
    diagnostic = RenderDiagnostic(message="Parse error", source=MALFORMED_MARKUP)
    lifecycle.settle(request, RenderFailure(diagnostic))
    assert lifecycle.state.kind is ViewKind.FAILED
    assert lifecycle.state.diagnostic.source == MALFORMED_MARKUP
    assert errors == [diagnostic]


def test_superseded_result_is_discarded() -> None:
    errors: list[RenderDiagnostic] = []
    lifecycle = RenderLifecycle(on_error=errors.append)
    stale = lifecycle.submit(MALFORMED_MARKUP)
    current = lifecycle.submit(VALID_MARKUP)
    assert lifecycle.settle(current, RenderSuccess(_artifact(VALID_MARKUP)))

    applied = lifecycle.settle(stale, RenderFailure(RenderDiagnostic("boom", MALFORMED_MARKUP)))

    assert applied is False
    assert lifecycle.state.kind is ViewKind.READY
    assert lifecycle.state.source == VALID_MARKUP
    assert errors == []


def test_empty_submission_supersedes_in_flight_render() -> None:
    lifecycle = RenderLifecycle()
    request = lifecycle.submit(VALID_MARKUP)
    lifecycle.submit("")
    assert not lifecycle.settle(request, RenderSuccess(_artifact(VALID_MARKUP)))
    assert lifecycle.state.kind is ViewKind.EMPTY


def test_render_markup_converts_engine_errors() -> None:
    lifecycle = RenderLifecycle()
    request = lifecycle.submit(MALFORMED_MARKUP)
    result = render_markup(FakeEngine(), request)
    assert isinstance(result, RenderFailure)
    assert not result.ok
    assert result.diagnostic.source == MALFORMED_MARKUP
    assert "Parse error" in result.diagnostic.message


def test_render_markup_converts_unexpected_errors() -> None:
    class BrokenEngine:
        def render(self, markup: str, diagram_id: str) -> VisualArtifact:
            raise ValueError("engine exploded")

    lifecycle = RenderLifecycle()
    request = lifecycle.submit(VALID_MARKUP)
    result = render_markup(BrokenEngine(), request)
    assert isinstance(result, RenderFailure)
    assert result.diagnostic.message == "Failed to render diagram: engine exploded"
    assert result.diagnostic.source == VALID_MARKUP


def test_diagram_ids_are_prefixed_and_carry_token() -> None:
    diagram_id = make_diagram_id(7)
    assert diagram_id.startswith("mermaid-")
    assert diagram_id.endswith("-7")


def test_raising_error_callback_does_not_escape_settle(caplog) -> None:
    def failing_callback(_diagnostic: RenderDiagnostic) -> None:
        raise RuntimeError("host callback failed")

    lifecycle = RenderLifecycle(on_error=failing_callback)
    request = lifecycle.submit(MALFORMED_MARKUP)
    diagnostic = RenderDiagnostic(message="Parse error", source=MALFORMED_MARKUP)

    assert lifecycle.settle(request, RenderFailure(diagnostic)) is True
    assert lifecycle.state.kind is ViewKind.FAILED
    assert "host callback failed" in caplog.text


def test_settle_without_notify_leaves_reporting_to_caller() -> None:
    errors: list[RenderDiagnostic] = []
    lifecycle = RenderLifecycle(on_error=errors.append)
    request = lifecycle.submit(MALFORMED_MARKUP)
    diagnostic = RenderDiagnostic(message="Parse error", source=MALFORMED_MARKUP)

    lifecycle.settle(request, RenderFailure(diagnostic), notify=False)
    assert lifecycle.state.kind is ViewKind.FAILED
    assert errors == []
    lifecycle.notify_error(diagnostic)
    assert errors == [diagnostic]
