"""Pannable/zoomable viewport around a rendered diagram."""

from __future__ import annotations

from dataclasses import dataclass, replace

from PySide6.QtCore import QByteArray, QPointF, QRectF, Qt, Signal
from PySide6.QtGui import QPainter, QTransform
from PySide6.QtSvg import QSvgRenderer
from PySide6.QtSvgWidgets import QGraphicsSvgItem
from PySide6.QtWidgets import (
    QFrame,
    QGraphicsScene,
    QGraphicsView,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from mermaidview.engine import VisualArtifact

MIN_SCALE = 0.5
MAX_SCALE = 4.0
ZOOM_STEP = 1.2
WHEEL_ZOOM_STEP = 1.12
# Keeps the scene large enough that panning is effectively unbounded.
PAN_SCENE_MARGIN = 100_000.0


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass(frozen=True)
class ViewportTransform:
    """Scale plus translation (view pixels) of the artifact center from the viewport center."""

    scale: float = 1.0
    dx: float = 0.0
    dy: float = 0.0


DEFAULT_TRANSFORM = ViewportTransform()


class ViewportController:
    """Transform state for one installed artifact. Never touches the artifact."""

    def __init__(self) -> None:
        self.transform = DEFAULT_TRANSFORM

    def zoom_by(self, factor: float) -> ViewportTransform:
        self.transform = replace(self.transform, scale=clamp_scale(self.transform.scale * factor))
        return self.transform

    def zoom_in(self, step: float = ZOOM_STEP) -> ViewportTransform:
        return self.zoom_by(step)

    def zoom_out(self, step: float = ZOOM_STEP) -> ViewportTransform:
        return self.zoom_by(1.0 / step)

    def pan_by(self, dx: float, dy: float) -> ViewportTransform:
        self.transform = replace(self.transform, dx=self.transform.dx + dx, dy=self.transform.dy + dy)
        return self.transform

    def reset_to_fit(self) -> ViewportTransform:
        self.transform = DEFAULT_TRANSFORM
        return self.transform


class DiagramCanvas(QGraphicsView):
    """Graphics view that maps drag and wheel input onto a ViewportController."""

    transformChanged = Signal(object)

    def __init__(self, controller: ViewportController, parent: QWidget | None = None):
        super().__init__(parent)
        self.controller = controller
        self._scene = QGraphicsScene(self)
        self.setScene(self._scene)
        self._svg_renderer: QSvgRenderer | None = None
        self._svg_item: QGraphicsSvgItem | None = None
        self._drag_origin: QPointF | None = None
        self.setRenderHints(QPainter.RenderHint.Antialiasing | QPainter.RenderHint.SmoothPixmapTransform)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setTransformationAnchor(QGraphicsView.ViewportAnchor.NoAnchor)
        self.setResizeAnchor(QGraphicsView.ViewportAnchor.NoAnchor)
        self.setFrameShape(QFrame.Shape.NoFrame)
        self.setCursor(Qt.CursorShape.OpenHandCursor)

    def load_svg(self, svg_text: str) -> bool:
        """Replace the scene content with the given SVG; returns False if Qt cannot parse it."""
        renderer = QSvgRenderer(QByteArray(svg_text.encode("utf-8")))
        self._scene.clear()
        self._svg_item = None
        self._svg_renderer = None
        if not renderer.isValid():
            return False
        item = QGraphicsSvgItem()
        item.setSharedRenderer(renderer)
        self._scene.addItem(item)
        bounds = item.boundingRect()
        self._scene.setSceneRect(
            bounds.adjusted(-PAN_SCENE_MARGIN, -PAN_SCENE_MARGIN, PAN_SCENE_MARGIN, PAN_SCENE_MARGIN)
        )
        self._svg_renderer = renderer
        self._svg_item = item
        return True

    def artifact_bounds(self) -> QRectF:
        if self._svg_item is None:
            return QRectF()
        return self._svg_item.boundingRect()

    def apply_transform(self) -> None:
        """Place the artifact according to the controller's current transform."""
        t = self.controller.transform
        self.setTransform(QTransform.fromScale(t.scale, t.scale))
        if self._svg_item is not None:
            center = self._svg_item.boundingRect().center()
            self.centerOn(center - QPointF(t.dx, t.dy) / t.scale)
        self.transformChanged.emit(t)

    def resizeEvent(self, event) -> None:  # noqa: N802
        super().resizeEvent(event)
        self.apply_transform()

    def mousePressEvent(self, event) -> None:  # noqa: N802
        if event.button() == Qt.MouseButton.LeftButton:
            self._drag_origin = event.position()
            self.setCursor(Qt.CursorShape.ClosedHandCursor)
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event) -> None:  # noqa: N802
        if self._drag_origin is None:
            super().mouseMoveEvent(event)
            return
        pos = event.position()
        delta = pos - self._drag_origin
        self._drag_origin = pos
        self.controller.pan_by(delta.x(), delta.y())
        self.apply_transform()
        event.accept()

    def mouseReleaseEvent(self, event) -> None:  # noqa: N802
        if event.button() == Qt.MouseButton.LeftButton and self._drag_origin is not None:
            self._drag_origin = None
            self.setCursor(Qt.CursorShape.OpenHandCursor)
            event.accept()
            return
        super().mouseReleaseEvent(event)

    def wheelEvent(self, event) -> None:  # noqa: N802
        direction = event.angleDelta().y()
        if direction == 0:
            event.ignore()
            return
        if direction > 0:
            self.controller.zoom_in(WHEEL_ZOOM_STEP)
        else:
            self.controller.zoom_out(WHEEL_ZOOM_STEP)
        self.apply_transform()
        event.accept()


class DiagramViewport(QWidget):
    """Toolbar plus canvas; exposes zoom in/out, fit and pan for one artifact."""

    def __init__(self, parent: QWidget | None = None):
        super().__init__(parent)
        self.controller = ViewportController()
        self.artifact: VisualArtifact | None = None

        self.canvas = DiagramCanvas(self.controller, self)
        self.canvas.transformChanged.connect(self._update_zoom_label)

        self.zoom_out_btn = QPushButton("−")
        self.zoom_out_btn.setToolTip("Zoom out")
        self.zoom_out_btn.clicked.connect(self.zoom_out)
        self.zoom_in_btn = QPushButton("+")
        self.zoom_in_btn.setToolTip("Zoom in")
        self.zoom_in_btn.clicked.connect(self.zoom_in)
        self.fit_btn = QPushButton("Fit")
        self.fit_btn.setToolTip("Fit diagram")
        self.fit_btn.clicked.connect(self.reset_to_fit)
        self.zoom_value = QLabel("100%")
        self.zoom_value.setMinimumWidth(48)
        self.zoom_value.setAlignment(Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter)

        toolbar = QHBoxLayout()
        toolbar.setContentsMargins(6, 6, 6, 0)
        toolbar.addStretch(1)
        for button in (self.zoom_out_btn, self.zoom_in_btn, self.fit_btn):
            button.setFixedHeight(26)
            toolbar.addWidget(button)
        toolbar.addWidget(self.zoom_value)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(0)
        layout.addLayout(toolbar)
        layout.addWidget(self.canvas, 1)

    @property
    def transform(self) -> ViewportTransform:
        return self.controller.transform

    def install(self, artifact: VisualArtifact) -> bool:
        """Show a new artifact at the default (centered, scale 1) placement."""
        self.artifact = artifact
        loaded = self.canvas.load_svg(artifact.svg)
        self.reset_to_fit()
        return loaded

    def zoom_in(self) -> None:
        self.controller.zoom_in()
        self.canvas.apply_transform()

    def zoom_out(self) -> None:
        self.controller.zoom_out()
        self.canvas.apply_transform()

    def pan_by(self, dx: float, dy: float) -> None:
        self.controller.pan_by(dx, dy)
        self.canvas.apply_transform()

    def reset_to_fit(self) -> None:
        self.controller.reset_to_fit()
        self.canvas.apply_transform()

    def _update_zoom_label(self, transform: ViewportTransform) -> None:
        self.zoom_value.setText(f"{round(transform.scale * 100)}%")
