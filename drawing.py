"""Interactive authoring of a new region from pointer input.

The session is a small state machine:

  IDLE --pointer_down (rect/circle)--> TRACKING --pointer_up--> IDLE
  IDLE --click (polygon)--> POLYGON --click--> POLYGON --finish--> IDLE

cancel() and a change of shape type return to IDLE from anywhere, discarding
whatever was collected. Rect and circle endpoints are tracked in display
space and converted when the shape completes; polygon vertices are converted
to image space as they are clicked.
"""

from __future__ import annotations

import dataclasses
import enum
import math

from PySide6.QtCore import QPointF, QRectF

from geometry import CoordinateTransform
from regions import LocationOption, RegionDraft
from shapes import (
  SHAPE_TYPES, MIN_POLYGON_VERTICES, CircleShape, PolygonShape, RectShape, Shape,
)
from log import get_logger

log = get_logger("drawing")

# Display pixels, independent of zoom.
MIN_SHAPE_SIZE = 10


class DrawingState(enum.Enum):
  IDLE = "idle"
  TRACKING = "tracking"
  POLYGON = "polygon"


class DrawingError(Exception):
  """An authoring action that was refused; the session keeps its prior state."""


class NoTargetSelected(DrawingError):
  def __init__(self) -> None:
    super().__init__("Select a location before drawing a region")


class InsufficientVertices(DrawingError):
  def __init__(self, count: int) -> None:
    super().__init__(
      "A polygon needs at least %d points (currently %d)"
      % (MIN_POLYGON_VERTICES, count)
    )
    self.count = count


@dataclasses.dataclass
class DrawingPreview:
  """Display-space geometry of the shape being authored."""
  shape_type: str
  start: QPointF | None = None
  end: QPointF | None = None
  vertices: list = dataclasses.field(default_factory=list)

  def rect(self) -> QRectF:
    return QRectF(self.start, self.end).normalized()

  def radius(self) -> float:
    return math.hypot(self.end.x() - self.start.x(), self.end.y() - self.start.y())


class DrawingSession:
  """In-progress region authoring state for one editor."""

  def __init__(self, shape_type: str = "rect", min_shape_size: float = MIN_SHAPE_SIZE):
    if shape_type not in SHAPE_TYPES:
      raise ValueError("unknown shape type %r" % (shape_type,))
    self._shape_type = shape_type
    self.min_shape_size = min_shape_size
    self._target: LocationOption | None = None
    self._state = DrawingState.IDLE
    self._start: QPointF | None = None
    self._end: QPointF | None = None
    self._vertices: list[QPointF] = []

  # -- Accessors --------------------------------------------------------------

  @property
  def state(self) -> DrawingState:
    return self._state

  @property
  def shape_type(self) -> str:
    return self._shape_type

  @property
  def target(self) -> LocationOption | None:
    return self._target

  @property
  def vertices(self) -> list[QPointF]:
    """Polygon vertices collected so far, in image space."""
    return list(self._vertices)

  @property
  def start_point(self) -> QPointF | None:
    return self._start

  @property
  def end_point(self) -> QPointF | None:
    return self._end

  def is_idle(self) -> bool:
    return self._state is DrawingState.IDLE

  # -- Configuration ----------------------------------------------------------

  def set_shape_type(self, shape_type: str) -> None:
    if shape_type not in SHAPE_TYPES:
      raise ValueError("unknown shape type %r" % (shape_type,))
    if shape_type == self._shape_type:
      return
    if not self.is_idle():
      log.debug("Shape type changed mid-draw, discarding %s", self._state.value)
      self.reset()
    self._shape_type = shape_type

  def set_target(self, target: LocationOption | None) -> None:
    if target is None and not self.is_idle():
      self.reset()
    self._target = target

  # -- Rect / circle ----------------------------------------------------------

  def pointer_down(self, display_point: QPointF) -> None:
    if self._shape_type == "polygon" or not self.is_idle():
      return
    self._require_target()
    self._start = QPointF(display_point)
    self._end = QPointF(display_point)
    self._state = DrawingState.TRACKING

  def pointer_move(self, display_point: QPointF) -> None:
    if self._state is DrawingState.TRACKING:
      self._end = QPointF(display_point)

  def pointer_up(self, display_point: QPointF,
                 transform: CoordinateTransform) -> RegionDraft | None:
    """Complete a rect or circle. Returns None when nothing was drawn or the
    drag was too small to count as intentional."""
    if self._state is not DrawingState.TRACKING:
      return None
    start, end = self._start, QPointF(display_point)
    target = self._target
    self.reset()

    shape = self._shape_from_drag(start, end, transform)
    if shape is None:
      log.debug("Discarded %s below %spx", self._shape_type, self.min_shape_size)
      return None
    return RegionDraft.from_shape(shape, target.id, target.name)

  def _shape_from_drag(self, start: QPointF, end: QPointF,
                       transform: CoordinateTransform) -> Shape | None:
    dx = end.x() - start.x()
    dy = end.y() - start.y()
    if self._shape_type == "rect":
      if abs(dx) < self.min_shape_size or abs(dy) < self.min_shape_size:
        return None
      origin = transform.to_image_space(QPointF(min(start.x(), end.x()),
                                                min(start.y(), end.y())))
      return RectShape(
        x=origin.x(), y=origin.y(),
        width=transform.to_image_length(abs(dx)),
        height=transform.to_image_length(abs(dy)),
      )
    elif self._shape_type == "circle":
      radius = math.hypot(dx, dy)
      if radius < self.min_shape_size:
        return None
      center = transform.to_image_space(start)
      return CircleShape(cx=center.x(), cy=center.y(),
                         r=transform.to_image_length(radius))
    raise TypeError("drag does not build a %r" % self._shape_type)

  # -- Polygon ----------------------------------------------------------------

  def click(self, display_point: QPointF, transform: CoordinateTransform) -> None:
    """Add a polygon vertex at the clicked point."""
    if self._shape_type != "polygon":
      return
    self._require_target()
    self._vertices.append(transform.to_image_space(display_point))
    self._state = DrawingState.POLYGON

  def finish(self) -> RegionDraft:
    """Close the polygon. Raises InsufficientVertices with fewer than three
    points, leaving the collected vertices in place."""
    if self._state is not DrawingState.POLYGON:
      self._require_target()
      raise InsufficientVertices(0)
    if len(self._vertices) < MIN_POLYGON_VERTICES:
      raise InsufficientVertices(len(self._vertices))
    shape = PolygonShape(points=list(self._vertices))
    target = self._target
    self.reset()
    return RegionDraft.from_shape(shape, target.id, target.name)

  # -- Reset ------------------------------------------------------------------

  def cancel(self) -> None:
    self.reset()

  def reset(self) -> None:
    self._state = DrawingState.IDLE
    self._start = None
    self._end = None
    self._vertices = []

  def _require_target(self) -> None:
    if self._target is None:
      raise NoTargetSelected()

  # -- Presentation -----------------------------------------------------------

  def preview(self, transform: CoordinateTransform) -> DrawingPreview | None:
    if self._state is DrawingState.TRACKING:
      return DrawingPreview(self._shape_type, start=QPointF(self._start),
                            end=QPointF(self._end))
    if self._state is DrawingState.POLYGON:
      return DrawingPreview("polygon", vertices=[
        transform.to_display_space(p) for p in self._vertices
      ])
    return None

  def instruction(self) -> str:
    """One-line guidance for the operator."""
    if self._target is None:
      return "Select a location"
    if self._shape_type == "rect":
      if self._state is DrawingState.TRACKING:
        return "Release to place the rectangle's opposite corner"
      return "Drag from one corner of the rectangle"
    if self._shape_type == "circle":
      if self._state is DrawingState.TRACKING:
        return "Release on the circle's edge"
      return "Drag outward from the circle's center"
    if not self._vertices:
      return "Click the polygon's vertices (at least %d)" % MIN_POLYGON_VERTICES
    return (
      "Add polygon vertices (%d so far) or press Finish polygon"
      % len(self._vertices)
    )
