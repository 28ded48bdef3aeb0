#!/usr/bin/env python3
"""Vector rendering of the two RC gimbals into an RGB frame buffer."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Tuple

import numpy as np

from channel_engine import DisplayState

try:
    from PySide6 import QtCore, QtGui
except ImportError as exc:  # pragma: no cover - runtime dependency
    raise SystemExit(
        "Missing dependency: PySide6. Install with `pip install -e .`."
    ) from exc


logger = logging.getLogger(__name__)

WHITE = QtGui.QColor(255, 255, 255)
PLATE = QtGui.QColor.fromRgbF(0.8, 0.8, 0.8)
CROSSHAIR = QtGui.QColor.fromRgbF(0.7, 0.7, 0.7)
FRAME = QtGui.QColor.fromRgbF(0.3, 0.3, 0.3)
MARKER = QtGui.QColor(179, 52, 121)

GIMBAL_SIZE = 100.0
GIMBAL_GAP_MARGINS = 5
PLATE_RADIUS = 0.825
MARKER_RADIUS = 0.1


class RenderError(RuntimeError):
    """Raised when a frame cannot be painted; a frame in this state is never presented."""


def ensure_gui_application() -> QtGui.QGuiApplication:
    """Return the process QGuiApplication, creating an offscreen one if needed.

    Frames are only ever painted onto QImages, so Qt never needs a real
    windowing platform.
    """
    app = QtGui.QGuiApplication.instance()
    if app is None:
        os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
        app = QtGui.QGuiApplication([])
    return app


@contextmanager
def preserved_state(painter: QtGui.QPainter) -> Iterator[QtGui.QPainter]:
    """Push the painter state (transform, pen, brush) and pop it on exit."""
    painter.save()
    try:
        yield painter
    finally:
        painter.restore()


def _stroke_in_device_space(
    painter: QtGui.QPainter,
    path: QtGui.QPainterPath,
    color: QtGui.QColor,
    width: float,
) -> None:
    # The path is built in logical units; map it now, then stroke without
    # any transform so ``width`` is in device pixels.
    device_path = painter.transform().map(path)
    pen = QtGui.QPen(color, width)
    pen.setCapStyle(QtCore.Qt.FlatCap)
    pen.setJoinStyle(QtCore.Qt.MiterJoin)
    with preserved_state(painter):
        painter.resetTransform()
        painter.strokePath(device_path, pen)


def draw_gimbal(painter: QtGui.QPainter, scale: float, x_val: float, y_val: float) -> None:
    """Draw one gimbal centred on the painter origin.

    The painter is expected to map one logical unit onto the full gimbal
    width, so the bounding square spans -0.5..0.5. ``scale`` is the device
    scale used for the stroke widths; ``x_val``/``y_val`` place the marker.
    """
    center = QtCore.QPointF(0.0, 0.0)

    painter.setPen(QtCore.Qt.NoPen)
    painter.setBrush(PLATE)
    painter.drawEllipse(center, PLATE_RADIUS, PLATE_RADIUS)

    # The plate outline is stroked together with the cross-hair.
    crosshair = QtGui.QPainterPath()
    crosshair.addEllipse(center, PLATE_RADIUS, PLATE_RADIUS)
    crosshair.moveTo(-0.5, 0.0)
    crosshair.lineTo(0.5, 0.0)
    crosshair.moveTo(0.0, -0.5)
    crosshair.lineTo(0.0, 0.5)
    _stroke_in_device_space(painter, crosshair, CROSSHAIR, 2.0 * scale)

    square = QtGui.QPainterPath()
    square.addRect(QtCore.QRectF(-0.5, -0.5, 1.0, 1.0))
    _stroke_in_device_space(painter, square, FRAME, 1.0 * scale)

    painter.translate(x_val, y_val)
    painter.setPen(QtCore.Qt.NoPen)
    painter.setBrush(MARKER)
    painter.drawEllipse(center, MARKER_RADIUS, MARKER_RADIUS)


@dataclass(frozen=True)
class GimbalLayout:
    """Placement of both gimbals; offsets are logical, centres are device pixels."""

    scale: float
    margin: float
    width: float
    height: float
    offset: Tuple[float, float]
    left_center: Tuple[float, float]
    right_center: Tuple[float, float]

    @property
    def gimbal_pixels(self) -> float:
        return GIMBAL_SIZE * self.scale


def gimbal_layout(width: int, height: int, scale: float) -> GimbalLayout:
    margin = scale * 10.0
    gimbals_width = 2.0 * GIMBAL_SIZE + GIMBAL_GAP_MARGINS * margin
    gimbals_height = GIMBAL_SIZE
    offset_x = (width / scale / 2.0) - (gimbals_width / 2.0)
    offset_y = (height / scale / 2.0) - (gimbals_height / 2.0)

    half = GIMBAL_SIZE / 2.0
    left = (half, half)
    right = (GIMBAL_SIZE + half + GIMBAL_GAP_MARGINS * margin, half)

    return GimbalLayout(
        scale=scale,
        margin=margin,
        width=gimbals_width,
        height=gimbals_height,
        offset=(offset_x, offset_y),
        left_center=((offset_x + left[0]) * scale, (offset_y + left[1]) * scale),
        right_center=((offset_x + right[0]) * scale, (offset_y + right[1]) * scale),
    )


def compose_frame(
    painter: QtGui.QPainter,
    width: int,
    height: int,
    scale: float,
    state: DisplayState,
) -> None:
    """Paint both gimbals for ``state`` over a white ``width`` x ``height`` area.

    Rudder/throttle (channels 4 and 3) drive the left gimbal and
    aileron/elevator (channels 1 and 2) the right one.
    """
    layout = gimbal_layout(width, height, scale)

    painter.fillRect(QtCore.QRectF(0.0, 0.0, float(width), float(height)), WHITE)

    painter.scale(scale, scale)
    painter.translate(*layout.offset)

    with preserved_state(painter):
        painter.translate(GIMBAL_SIZE / 2.0, GIMBAL_SIZE / 2.0)
        painter.scale(GIMBAL_SIZE, GIMBAL_SIZE)
        draw_gimbal(painter, scale, state.channel_4, state.channel_3)

    with preserved_state(painter):
        painter.translate(
            GIMBAL_SIZE + GIMBAL_SIZE / 2.0 + GIMBAL_GAP_MARGINS * layout.margin,
            GIMBAL_SIZE / 2.0,
        )
        painter.scale(GIMBAL_SIZE, GIMBAL_SIZE)
        draw_gimbal(painter, scale, state.channel_1, state.channel_2)


class FrameBuffer:
    """A 24-bit RGB image the gimbals are painted into once per frame."""

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise RenderError(f"Frame buffer size must be positive, got {width}x{height}.")
        self.image = QtGui.QImage(width, height, QtGui.QImage.Format_RGB888)
        if self.image.isNull():
            raise RenderError(f"Unable to allocate a {width}x{height} frame buffer.")
        self.image.fill(WHITE)
        logger.debug("Frame buffer %dx%d, pitch %d bytes", width, height, self.image.bytesPerLine())

    @property
    def width(self) -> int:
        return self.image.width()

    @property
    def height(self) -> int:
        return self.image.height()

    @property
    def pitch(self) -> int:
        return self.image.bytesPerLine()

    @contextmanager
    def painting(self) -> Iterator[QtGui.QPainter]:
        painter = QtGui.QPainter()
        if not painter.begin(self.image):
            raise RenderError("Unable to acquire a painter on the frame buffer.")
        try:
            painter.setRenderHint(QtGui.QPainter.Antialiasing)
            yield painter
        finally:
            painter.end()

    def render(self, scale: float, state: DisplayState) -> np.ndarray:
        with self.painting() as painter:
            compose_frame(painter, self.width, self.height, scale, state)
        return self.pixels()

    def pixels(self) -> np.ndarray:
        """Copy the image out as a ``(height, width, 3)`` uint8 array without row padding."""
        data = np.frombuffer(self.image.constBits(), dtype=np.uint8, count=self.image.sizeInBytes())
        rows = data.reshape(self.height, self.pitch)
        return rows[:, : self.width * 3].reshape(self.height, self.width, 3).copy()


def describe_layout(layout: GimbalLayout) -> str:
    return (
        f"gimbals {layout.width:.0f}x{layout.height:.0f} @ x{layout.scale:g}, "
        f"left centre ({layout.left_center[0]:.1f}, {layout.left_center[1]:.1f}), "
        f"right centre ({layout.right_center[0]:.1f}, {layout.right_center[1]:.1f})"
    )
