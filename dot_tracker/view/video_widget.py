from typing import Optional, Tuple

from PyQt5 import QtCore, QtGui, QtWidgets

ZOOM_STEP = 1.05
MAX_ZOOM = 8.0
DRAG_THRESHOLD_PX = 3


class VideoCanvas(QtWidgets.QWidget):
    """Shows the annotated frame and reports clicks in frame pixel coordinates.

    The frame is fitted to the widget; the wheel zooms around the pointer and a
    left drag pans once zoomed in. A left click without dragging emits
    ``clicked``; a right click emits ``context_requested`` with the global
    position for a popup menu.
    """

    clicked = QtCore.pyqtSignal(float, float)
    context_requested = QtCore.pyqtSignal(float, float, QtCore.QPoint)

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent)
        self.setAttribute(QtCore.Qt.WA_OpaquePaintEvent, True)
        self.setFocusPolicy(QtCore.Qt.StrongFocus)
        self.setCursor(QtCore.Qt.CrossCursor)
        self._pixmap: Optional[QtGui.QPixmap] = None
        self._zoom = 1.0
        self._pan = QtCore.QPointF(0.0, 0.0)
        self._press: Optional[QtCore.QPoint] = None
        self._panning = False

    def set_frame(self, pixmap: QtGui.QPixmap) -> None:
        if self._pixmap is not None and self._pixmap.size() != pixmap.size():
            self._zoom = 1.0
            self._pan = QtCore.QPointF(0.0, 0.0)
        self._pixmap = pixmap
        self.update()

    def scale(self) -> float:
        """Widget pixels per frame pixel at the current zoom."""
        if self._pixmap is None or self._pixmap.width() == 0 or self._pixmap.height() == 0:
            return 1.0
        fit = min(self.width() / self._pixmap.width(), self.height() / self._pixmap.height())
        return (fit if fit > 0 else 1.0) * self._zoom

    def _target(self) -> QtCore.QRectF:
        scale = self.scale()
        width = self._pixmap.width() * scale
        height = self._pixmap.height() * scale
        left = (self.width() - width) / 2 + self._pan.x()
        top = (self.height() - height) / 2 + self._pan.y()
        return QtCore.QRectF(left, top, width, height)

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:
        painter = QtGui.QPainter(self)
        painter.fillRect(self.rect(), QtCore.Qt.black)
        if self._pixmap is None:
            return
        painter.setRenderHint(QtGui.QPainter.SmoothPixmapTransform)
        painter.drawPixmap(self._target(), self._pixmap, QtCore.QRectF(self._pixmap.rect()))

    def resizeEvent(self, event: QtGui.QResizeEvent) -> None:
        super().resizeEvent(event)
        self._limit_pan()

    # Mouse handling
    def mousePressEvent(self, event: QtGui.QMouseEvent) -> None:
        if event.button() != QtCore.Qt.LeftButton:
            super().mousePressEvent(event)
            return
        self._press = event.pos()
        self._panning = False
        event.accept()

    def mouseMoveEvent(self, event: QtGui.QMouseEvent) -> None:
        if self._press is None or not event.buttons() & QtCore.Qt.LeftButton:
            super().mouseMoveEvent(event)
            return
        moved = event.pos() - self._press
        if not self._panning and self._zoom > 1.0 and moved.manhattanLength() > DRAG_THRESHOLD_PX:
            self._panning = True
            self.setCursor(QtCore.Qt.ClosedHandCursor)
        if self._panning:
            self._pan += QtCore.QPointF(moved)
            self._press = event.pos()
            self._limit_pan()
            self.update()
        event.accept()

    def mouseReleaseEvent(self, event: QtGui.QMouseEvent) -> None:
        coords = self._frame_coords(event.pos())
        if event.button() == QtCore.Qt.LeftButton:
            if self._panning:
                self.setCursor(QtCore.Qt.CrossCursor)
            elif coords is not None:
                self.clicked.emit(*coords)
            self._press = None
            self._panning = False
            event.accept()
        elif event.button() == QtCore.Qt.RightButton:
            if coords is not None:
                self.context_requested.emit(coords[0], coords[1], event.globalPos())
            event.accept()
        else:
            super().mouseReleaseEvent(event)

    def wheelEvent(self, event: QtGui.QWheelEvent) -> None:
        steps = event.angleDelta().y()
        if self._pixmap is None or steps == 0:
            return
        zoom = self._zoom * (ZOOM_STEP if steps > 0 else 1 / ZOOM_STEP)
        self._zoom_at(max(1.0, min(MAX_ZOOM, zoom)), event.pos())
        event.accept()

    def _zoom_at(self, zoom: float, anchor: QtCore.QPoint) -> None:
        if zoom == self._zoom:
            return
        before = self._target()
        self._zoom = zoom
        after = self._target()
        # Keep the frame pixel under the pointer in place.
        ratio = after.width() / before.width() if before.width() else 1.0
        self._pan += QtCore.QPointF(
            (anchor.x() - before.center().x()) * (1 - ratio),
            (anchor.y() - before.center().y()) * (1 - ratio),
        )
        self._limit_pan()
        self.update()

    def _limit_pan(self) -> None:
        if self._pixmap is None:
            self._pan = QtCore.QPointF(0.0, 0.0)
            return
        scale = self.scale()
        slack_x = max(0.0, (self._pixmap.width() * scale - self.width()) / 2)
        slack_y = max(0.0, (self._pixmap.height() * scale - self.height()) / 2)
        self._pan = QtCore.QPointF(
            max(-slack_x, min(slack_x, self._pan.x())),
            max(-slack_y, min(slack_y, self._pan.y())),
        )

    def _frame_coords(self, pos: QtCore.QPoint) -> Optional[Tuple[float, float]]:
        if self._pixmap is None:
            return None
        target = self._target()
        if target.width() <= 0 or not target.contains(QtCore.QPointF(pos)):
            return None
        scale = self.scale()
        return (pos.x() - target.left()) / scale, (pos.y() - target.top()) / scale
