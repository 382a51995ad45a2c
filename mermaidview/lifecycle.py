"""Render lifecycle: view state model and the token-ordered render controller."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Union

from PySide6.QtCore import QObject, QRunnable, QThreadPool, Signal

from mermaidview.engine import EngineRenderError, RenderEngine, VisualArtifact

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderDiagnostic:
    """Failure message paired with the exact markup that failed."""

    message: str
    source: str


@dataclass(frozen=True)
class RenderSuccess:
    artifact: VisualArtifact

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class RenderFailure:
    diagnostic: RenderDiagnostic

    @property
    def ok(self) -> bool:
        return False


RenderResult = Union[RenderSuccess, RenderFailure]


class ViewKind(str, Enum):
    EMPTY = "empty"
    RENDERING = "rendering"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ViewState:
    kind: ViewKind
    source: str | None = None
    artifact: VisualArtifact | None = None
    diagnostic: RenderDiagnostic | None = None

    @classmethod
    def empty(cls) -> "ViewState":
        return cls(ViewKind.EMPTY)

    @classmethod
    def rendering(cls, source: str) -> "ViewState":
        return cls(ViewKind.RENDERING, source=source)

    @classmethod
    def ready(cls, artifact: VisualArtifact) -> "ViewState":
        return cls(ViewKind.READY, source=artifact.source, artifact=artifact)

    @classmethod
    def failed(cls, diagnostic: RenderDiagnostic) -> "ViewState":
        return cls(ViewKind.FAILED, source=diagnostic.source, diagnostic=diagnostic)


@dataclass(frozen=True)
class RenderRequest:
    token: int
    source: str
    diagram_id: str


def make_diagram_id(token: int) -> str:
    """Unique render-target id; the token keeps same-nanosecond requests apart."""
    return f"mermaid-{time.time_ns()}-{token}"


def render_markup(engine: RenderEngine, request: RenderRequest) -> RenderResult:
    """Call the engine and convert every failure into a diagnostic."""
    try:
        artifact = engine.render(request.source, request.diagram_id)
    except EngineRenderError as exc:
        message = str(exc) or "Failed to render diagram"
        return RenderFailure(RenderDiagnostic(message=message, source=request.source))
    except Exception as exc:
        log.exception("Unexpected engine failure for %s", request.diagram_id)
        return RenderFailure(RenderDiagnostic(message=f"Failed to render diagram: {exc}", source=request.source))
    return RenderSuccess(artifact)


class RenderLifecycle:
    """Token-ordered state machine; only the latest request may change state.

    This holds no Qt objects. The Qt controller below feeds it requests and
    settled results on the GUI thread.
    """

    def __init__(self, on_error: Callable[[RenderDiagnostic], None] | None = None) -> None:
        self.on_error = on_error
        self._latest_token = 0
        self._state = ViewState.empty()

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def latest_token(self) -> int:
        return self._latest_token

    def submit(self, markup: str | None) -> RenderRequest | None:
        """Start a new cycle for `markup`; returns the request to render, if any."""
        # Any submission supersedes whatever is still in flight.
        self._latest_token += 1
        if not markup:
            self._state = ViewState.empty()
            return None
        request = RenderRequest(
            token=self._latest_token,
            source=markup,
            diagram_id=make_diagram_id(self._latest_token),
        )
        self._state = ViewState.rendering(markup)
        return request

    def is_current(self, request: RenderRequest) -> bool:
        return request.token == self._latest_token

    def settle(self, request: RenderRequest, result: RenderResult, notify: bool = True) -> bool:
        """Apply a finished render; returns False when the result was superseded.

        With `notify=False` the caller reports failures itself through
        `notify_error`, after publishing the new state.
        """
        if not self.is_current(request):
            log.debug(
                "Discarding superseded render %s (token %d, latest %d)",
                request.diagram_id,
                request.token,
                self._latest_token,
            )
            return False

        if isinstance(result, RenderSuccess):
            self._state = ViewState.ready(result.artifact)
            return True

        self._state = ViewState.failed(result.diagnostic)
        if notify:
            self.notify_error(result.diagnostic)
        return True

    def notify_error(self, diagnostic: RenderDiagnostic) -> None:
        """Hand a diagnostic to the host callback; its own failures stay here."""
        if self.on_error is None:
            return
        try:
            self.on_error(diagnostic)
        except Exception:
            log.exception("Error callback raised while handling a render failure")


class DiagramRenderWorkerSignals(QObject):
    """Signals emitted by background diagram render workers."""

    finished = Signal(object, object)


class DiagramRenderWorker(QRunnable):
    """Run one engine call off the GUI thread."""

    def __init__(self, engine: RenderEngine, request: RenderRequest):
        super().__init__()
        self.engine = engine
        self.request = request
        self.signals = DiagramRenderWorkerSignals()

    def run(self) -> None:
        result = render_markup(self.engine, self.request)
        self.signals.finished.emit(self.request, result)


class DiagramRenderController(QObject):
    """Drive renders in a thread pool and publish state changes on the GUI thread."""

    stateChanged = Signal(object)
    renderStarted = Signal(object)
    renderSettled = Signal(object)

    def __init__(
        self,
        engine: RenderEngine,
        on_error: Callable[[RenderDiagnostic], None] | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self.engine = engine
        self._lifecycle = RenderLifecycle(on_error=on_error)
        self._render_pool = QThreadPool(self)
        # Superseded renders cannot be aborted, so allow a few to overlap with
        # the current one instead of queueing behind them.
        self._render_pool.setMaxThreadCount(4)
        self._active_render_workers: set[DiagramRenderWorker] = set()

    @property
    def state(self) -> ViewState:
        return self._lifecycle.state

    @property
    def on_error(self) -> Callable[[RenderDiagnostic], None] | None:
        return self._lifecycle.on_error

    @on_error.setter
    def on_error(self, callback: Callable[[RenderDiagnostic], None] | None) -> None:
        self._lifecycle.on_error = callback

    @property
    def pending_count(self) -> int:
        return len(self._active_render_workers)

    def submit(self, markup: str | None) -> RenderRequest | None:
        request = self._lifecycle.submit(markup)
        self.stateChanged.emit(self._lifecycle.state)
        if request is None:
            log.debug("Empty markup; nothing to render")
            return None

        log.info("Rendering %s (%d chars)", request.diagram_id, len(request.source))
        worker = DiagramRenderWorker(self.engine, request)
        worker.setAutoDelete(False)
        self._active_render_workers.add(worker)
        worker.signals.finished.connect(self._on_render_finished)
        self.renderStarted.emit(request)
        self._render_pool.start(worker)
        return request

    def _on_render_finished(self, request: RenderRequest, result: RenderResult) -> None:
        worker_to_remove = None
        for worker in self._active_render_workers:
            if worker.request.token == request.token:
                worker_to_remove = worker
                break
        if worker_to_remove is not None:
            self._active_render_workers.remove(worker_to_remove)

        if not self._lifecycle.settle(request, result, notify=False):
            return
        if isinstance(result, RenderFailure):
            log.warning("Render %s failed: %s", request.diagram_id, result.diagnostic.message)
        else:
            log.info("Render %s ready", request.diagram_id)
        self.stateChanged.emit(self._lifecycle.state)
        self.renderSettled.emit(result)
        if isinstance(result, RenderFailure):
            self._lifecycle.notify_error(result.diagnostic)

    def shutdown(self, timeout_ms: int = 2000) -> bool:
        """Wait for in-flight engine calls; results arriving later are ignored."""
        self._lifecycle.submit(None)
        return self._render_pool.waitForDone(timeout_ms)
