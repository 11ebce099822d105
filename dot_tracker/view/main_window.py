from typing import TYPE_CHECKING, List, Optional, Sequence
import logging

import cv2
import numpy as np
from PyQt5 import QtCore, QtGui, QtWidgets

from ..model.entities import Point2D, PointStatus, SeriesRow, status_colour
from ..model.review import CommandType, EngineState, FrameView
from .video_widget import VideoCanvas

if TYPE_CHECKING:  # pragma: no cover - for static analysis only
    from ..controller import DotTrackerController


CONTEXT_RADIUS_PX = 20.0

BUTTON_STYLE = """
QPushButton {
    border-radius: 8px;
    background-color: #1f1f1f;
    color: #f0f0f0;
    font-size: 13px;
    padding: 6px 12px;
}
QPushButton:hover {
    background-color: #2a2a2a;
}
QPushButton:checked {
    background-color: #2d6a2d;
}
QPushButton:disabled {
    color: #777777;
    background-color: #161616;
}
"""


class DotTrackerWindow(QtWidgets.QMainWindow):
    def __init__(self, controller: "DotTrackerController") -> None:
        super().__init__()
        self._log = logging.getLogger(__name__)
        self.controller = controller
        self.display = controller.settings.display

        self._view: Optional[FrameView] = None
        self._correction: Optional[List[Optional[Point2D]]] = None
        self._correction_image: Optional[np.ndarray] = None
        self._correction_row: Optional[SeriesRow] = None
        self._unplaced: List[int] = []

        self.setWindowTitle("Dot Tracker")
        self.resize(self.display.window_width, self.display.window_height)
        self._build_ui()
        self._setup_connections()

    # ------------------------------------------------------------------
    # UI construction
    # ------------------------------------------------------------------
    def _build_ui(self) -> None:
        central = QtWidgets.QWidget()
        central.setStyleSheet("background-color: #101010;")
        layout = QtWidgets.QVBoxLayout(central)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(8)

        self.canvas = VideoCanvas()
        layout.addWidget(self.canvas, stretch=1)

        self.status_label = QtWidgets.QLabel("")
        self.status_label.setStyleSheet("color: #d6d6d6; font-size: 13px;")
        layout.addWidget(self.status_label)

        controls = QtWidgets.QHBoxLayout()
        controls.setSpacing(6)

        self.play_back_button = self._build_button("<<")
        self.step_back_button = self._build_button("<")
        self.stop_button = self._build_button("O")
        self.step_fwd_button = self._build_button(">")
        self.play_fwd_button = self._build_button(">>")
        self.transport_buttons = [
            (self.play_back_button, CommandType.PLAY_BACK),
            (self.step_back_button, CommandType.STEP_BACK),
            (self.stop_button, CommandType.STOP),
            (self.step_fwd_button, CommandType.STEP_FWD),
            (self.play_fwd_button, CommandType.PLAY_FWD),
        ]
        for button, _ in self.transport_buttons:
            controls.addWidget(button)

        controls.addSpacing(12)
        frame_label = QtWidgets.QLabel("Frame")
        frame_label.setStyleSheet("color: #bbbbbb;")
        controls.addWidget(frame_label)
        self.frame_field = QtWidgets.QLineEdit()
        self.frame_field.setFixedWidth(72)
        self.frame_field.setValidator(QtGui.QIntValidator(1, 10_000_000, self))
        self.frame_field.setStyleSheet("color: #f0f0f0; background-color: #1f1f1f;")
        controls.addWidget(self.frame_field)

        controls.addStretch(1)

        self.tracking_button = self._build_button("PAUSED")
        self.tracking_button.setCheckable(True)
        self.tracking_button.setMinimumWidth(110)
        controls.addWidget(self.tracking_button)

        self.modify_button = self._build_button("MODIFY")
        controls.addWidget(self.modify_button)

        self.done_button = self._build_button("Done")
        self.done_button.hide()
        controls.addWidget(self.done_button)

        layout.addLayout(controls)
        self.setCentralWidget(central)

    def _build_button(self, text: str) -> QtWidgets.QPushButton:
        button = QtWidgets.QPushButton(text)
        button.setCursor(QtCore.Qt.PointingHandCursor)
        button.setFocusPolicy(QtCore.Qt.NoFocus)
        button.setStyleSheet(BUTTON_STYLE)
        return button

    def _setup_connections(self) -> None:
        for button, kind in self.transport_buttons:
            button.clicked.connect(lambda _, kind=kind: self.controller.send(kind))
        self.frame_field.returnPressed.connect(self._jump_to_field)
        self.tracking_button.clicked.connect(self._toggle_tracking)
        self.modify_button.clicked.connect(lambda: self.controller.send(CommandType.MODIFY))
        self.done_button.clicked.connect(self._finish_correction)

        self.canvas.clicked.connect(self._handle_canvas_click)
        self.canvas.context_requested.connect(self._show_marker_menu)

        self.controller.frame_ready.connect(self.show_frame)
        self.controller.correction_requested.connect(self.begin_correction)
        self.controller.session_finished.connect(self._on_session_finished)
        self.controller.session_failed.connect(self._on_session_failed)

    # ------------------------------------------------------------------
    # Engine updates
    # ------------------------------------------------------------------
    def show_frame(self, view: FrameView) -> None:
        self._view = view
        if self._correction is not None:
            return
        self.setWindowTitle(view.title)
        tracking = view.state is EngineState.TRACKING_ACTIVE
        self.tracking_button.setChecked(tracking)
        self.tracking_button.setText("TRACKING" if tracking else "PAUSED")
        if not self.frame_field.hasFocus():
            self.frame_field.setText(str(view.frame))
        self.status_label.setText(f"{view.state.value.upper()}  frame {view.frame} of {view.last_frame}")
        self._render(view.image, view.positions, view.statuses, view.invalid, view.labels)

    def begin_correction(self, image: np.ndarray, row: SeriesRow, failed: Sequence[int]) -> None:
        self._correction = row.positions()
        self._correction_image = image
        self._correction_row = row
        self._unplaced = list(failed)
        if failed:
            title = "RESET INVALID DOTS IN FRAME %d..." % row.frame
        else:
            title = "ADJUST DOTS IN FRAME %d..." % row.frame
        self.setWindowTitle(title)
        self.status_label.setText("Click to place markers, then press Done or Enter.")
        self._set_correction_mode(True)
        self._render_correction()

    def _set_correction_mode(self, enabled: bool) -> None:
        for button, _ in self.transport_buttons:
            button.setEnabled(not enabled)
        self.frame_field.setEnabled(not enabled)
        self.tracking_button.setEnabled(not enabled)
        self.modify_button.setEnabled(not enabled)
        self.done_button.setVisible(enabled)

    def _render_correction(self) -> None:
        if self._correction is None or self._correction_row is None:
            return
        statuses: List[Optional[PointStatus]] = []
        for k, record in enumerate(self._correction_row.points):
            if k in self._unplaced:
                statuses.append(PointStatus.FAILED_TRACK)
            elif record.status is PointStatus.USER_INVALID:
                statuses.append(PointStatus.USER_INVALID)
            else:
                statuses.append(PointStatus.VALID)
        invalid = [False] * len(statuses)
        self._render(self._correction_image, self._correction, statuses, invalid, self._correction_row.labels)

    def _finish_correction(self) -> None:
        if self._correction is None:
            return
        if any(pos is None for pos in self._correction):
            self.status_label.setText("Every marker needs a position before submitting.")
            return
        positions = list(self._correction)
        self._correction = None
        self._correction_image = None
        self._correction_row = None
        self._unplaced = []
        self._set_correction_mode(False)
        self.controller.submit_correction(positions)

    def _on_session_finished(self, result) -> None:
        self._log.debug("session finished: %s", result.outcome.value)
        self.close()

    def _on_session_failed(self, message: str) -> None:
        QtWidgets.QMessageBox.critical(self, "Dot Tracker", f"Review session failed:\n{message}")
        self.close()

    # ------------------------------------------------------------------
    # Operator input
    # ------------------------------------------------------------------
    def _jump_to_field(self) -> None:
        text = self.frame_field.text().strip()
        if text:
            self.controller.jump(int(text))
        self.canvas.setFocus()

    def _toggle_tracking(self) -> None:
        if self._view is not None and self._view.state is EngineState.TRACKING_ACTIVE:
            self.controller.send(CommandType.PAUSE)
        else:
            self.controller.send(CommandType.RESUME)

    def _handle_canvas_click(self, x: float, y: float) -> None:
        if self._correction is None:
            return
        candidates = self._unplaced or list(range(len(self._correction)))
        index = self._nearest(self._correction, (x, y), candidates)
        if index is None:
            index = candidates[0]
        self._correction[index] = (x, y)
        if index in self._unplaced:
            self._unplaced.remove(index)
        self._render_correction()

    def _show_marker_menu(self, x: float, y: float, global_pos: QtCore.QPoint) -> None:
        view = self._view
        if view is None or self._correction is not None:
            return
        index = self._nearest(view.positions, (x, y), range(len(view.positions)))
        if index is None:
            return
        pos = view.positions[index]
        distance = float(np.hypot(pos[0] - x, pos[1] - y)) * self.canvas.scale()
        if distance > CONTEXT_RADIUS_PX:
            return
        menu = QtWidgets.QMenu(self)
        header = menu.addAction(view.labels[index])
        header.setEnabled(False)
        invalid_action = menu.addAction("INVALID")
        invalid_action.setCheckable(True)
        invalid_action.setChecked(view.invalid[index])
        chosen = menu.exec_(global_pos)
        if chosen is invalid_action:
            self.controller.toggle_invalid(index)

    @staticmethod
    def _nearest(
        positions: Sequence[Optional[Point2D]], target: Point2D, candidates: Sequence[int]
    ) -> Optional[int]:
        best: Optional[int] = None
        best_distance = float("inf")
        for k in candidates:
            pos = positions[k]
            if pos is None:
                continue
            distance = (pos[0] - target[0]) ** 2 + (pos[1] - target[1]) ** 2
            if distance < best_distance:
                best, best_distance = k, distance
        return best

    def keyPressEvent(self, event: QtGui.QKeyEvent) -> None:
        key = event.key()
        if self._correction is not None:
            if key in (QtCore.Qt.Key_Return, QtCore.Qt.Key_Enter):
                self._finish_correction()
                return
        elif key == QtCore.Qt.Key_Left:
            self.controller.send(CommandType.STEP_BACK)
            return
        elif key == QtCore.Qt.Key_Right:
            self.controller.send(CommandType.STEP_FWD)
            return
        elif key == QtCore.Qt.Key_Space:
            self._toggle_tracking()
            return
        super().keyPressEvent(event)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _render(
        self,
        image: np.ndarray,
        positions: Sequence[Optional[Point2D]],
        statuses: Sequence[Optional[PointStatus]],
        invalid: Sequence[bool],
        labels: Sequence[str],
    ) -> None:
        if image.ndim == 2:
            rgb_frame = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        else:
            rgb_frame = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        rgb_frame = np.ascontiguousarray(rgb_frame)
        height, width, _ = rgb_frame.shape
        qimage = QtGui.QImage(rgb_frame.data, width, height, 3 * width, QtGui.QImage.Format_RGB888)
        pixmap = QtGui.QPixmap.fromImage(qimage.copy())

        painter = QtGui.QPainter(pixmap)
        painter.setRenderHint(QtGui.QPainter.Antialiasing)
        self._draw_markers(painter, positions, statuses, invalid, labels)
        painter.end()
        self.canvas.set_frame(pixmap)

    def _marker_colour(self, status: Optional[PointStatus], invalid: bool) -> QtGui.QColor:
        if invalid:
            status = PointStatus.USER_INVALID
        name = "untracked" if status is None else status.name.lower()
        override = self.display.status_colors.get(name)
        if override:
            return QtGui.QColor(override)
        return QtGui.QColor(*status_colour(status))

    def _draw_markers(
        self,
        painter: QtGui.QPainter,
        positions: Sequence[Optional[Point2D]],
        statuses: Sequence[Optional[PointStatus]],
        invalid: Sequence[bool],
        labels: Sequence[str],
    ) -> None:
        radius = float(self.display.marker_size)
        font = painter.font()
        font.setPointSize(10)
        painter.setFont(font)
        label_pen = QtGui.QPen(QtGui.QColor(self.display.label_color))
        for pos, status, excluded, label in zip(positions, statuses, invalid, labels):
            if pos is None:
                continue
            colour = self._marker_colour(status, excluded)
            painter.setPen(QtGui.QPen(colour, 2))
            painter.setBrush(QtCore.Qt.NoBrush)
            center = QtCore.QPointF(*pos)
            painter.drawEllipse(center, radius, radius)
            painter.drawPoint(center)
            painter.setPen(label_pen)
            painter.drawText(center + QtCore.QPointF(radius + 2, -radius - 2), label)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:
        self.controller.close()
        super().closeEvent(event)
