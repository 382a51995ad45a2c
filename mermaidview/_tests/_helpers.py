from __future__ import annotations

import threading

from mermaidview.engine import EngineRenderError, VisualArtifact

VALID_MARKUP = "graph TD; A-->B"
MALFORMED_MARKUP = "graph TD; A--"

SAMPLE_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="120" height="60" viewBox="0 0 120 60">'
    '<rect x="0" y="0" width="120" height="60" fill="#e0e7ff" stroke="#4338ca"/>'
    "</svg>"
)


class FakeEngine:
    """Engine double: rejects markup in `failing`, can hold chosen markup until released."""

    def __init__(self, failing: set[str] | None = None, svg: str = SAMPLE_SVG):
        self.failing = failing if failing is not None else {MALFORMED_MARKUP}
        self.svg = svg
        self.calls: list[tuple[str, str]] = []
        self.gates: dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self.closed = False

    def hold(self, markup: str) -> threading.Event:
        gate = threading.Event()
        self.gates[markup] = gate
        return gate

    def render(self, markup: str, diagram_id: str) -> VisualArtifact:
        with self._lock:
            self.calls.append((markup, diagram_id))
        gate = self.gates.get(markup)
        if gate is not None:
            gate.wait(5)
        if markup in self.failing:
            raise EngineRenderError(f"Parse error on line 1:\n{markup}\n-------------^")
        return VisualArtifact(svg=self.svg, diagram_id=diagram_id, source=markup)

    def close(self) -> None:
        self.closed = True
