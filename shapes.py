"""Region geometry: the rect / circle / polygon variants and their payloads."""

from __future__ import annotations

import dataclasses
import json
import math
from typing import Any, Mapping, Union

from PySide6.QtCore import QPointF, QRectF

from geometry import InvalidGeometry

SHAPE_TYPES = ("rect", "circle", "polygon")
SHAPE_LABELS = {
  "rect": "Rectangle",
  "circle": "Circle",
  "polygon": "Polygon",
}
MIN_POLYGON_VERTICES = 3


# -- Variants -----------------------------------------------------------------

@dataclasses.dataclass
class RectShape:
  x: float
  y: float
  width: float
  height: float

  def bounds(self) -> QRectF:
    return QRectF(self.x, self.y, self.width, self.height)


@dataclasses.dataclass
class CircleShape:
  cx: float
  cy: float
  r: float

  @property
  def center(self) -> QPointF:
    return QPointF(self.cx, self.cy)


@dataclasses.dataclass
class PolygonShape:
  points: list  # list[QPointF], image space, >= 3 entries


Shape = Union[RectShape, CircleShape, PolygonShape]


def shape_type_of(shape: Shape) -> str:
  if isinstance(shape, RectShape):
    return "rect"
  elif isinstance(shape, CircleShape):
    return "circle"
  elif isinstance(shape, PolygonShape):
    return "polygon"
  raise TypeError("not a shape: %r" % (shape,))


def label_anchor(shape: Shape) -> QPointF:
  """Image-space point a region label is positioned from."""
  if isinstance(shape, RectShape):
    return QPointF(shape.x, shape.y)
  elif isinstance(shape, CircleShape):
    return shape.center
  elif isinstance(shape, PolygonShape):
    return QPointF(shape.points[0])
  raise TypeError("not a shape: %r" % (shape,))


# -- Serialization ------------------------------------------------------------

def to_payload(shape: Shape) -> dict[str, Any]:
  """Serialize a shape to the key-value coords payload the store persists."""
  if isinstance(shape, RectShape):
    return {"x": shape.x, "y": shape.y, "width": shape.width, "height": shape.height}
  elif isinstance(shape, CircleShape):
    return {"cx": shape.cx, "cy": shape.cy, "r": shape.r}
  elif isinstance(shape, PolygonShape):
    return {"points": [{"x": p.x(), "y": p.y()} for p in shape.points]}
  raise TypeError("not a shape: %r" % (shape,))


def _number(payload: Mapping[str, Any], key: str) -> float:
  """Read a finite number from the payload, coercing numeric strings."""
  if not isinstance(payload, Mapping) or key not in payload:
    raise InvalidGeometry("missing coordinate %r" % key)
  raw = payload[key]
  if isinstance(raw, bool):
    raise InvalidGeometry("coordinate %r must be a number, got %r" % (key, raw))
  try:
    value = float(raw)
  except (TypeError, ValueError):
    raise InvalidGeometry("coordinate %r must be a number, got %r" % (key, raw)) from None
  if not math.isfinite(value):
    raise InvalidGeometry("coordinate %r must be finite, got %r" % (key, raw))
  return value


def from_payload(shape_type: str, payload: Mapping[str, Any] | str | None) -> Shape:
  """Validate a persisted coords payload and build the matching shape.

  ``payload`` may also be the JSON text of the payload. Raises InvalidGeometry
  for anything that cannot be rendered.
  """
  if isinstance(payload, str):
    try:
      payload = json.loads(payload)
    except json.JSONDecodeError as e:
      raise InvalidGeometry("coords are not valid JSON: %s" % e) from None
  if not isinstance(payload, Mapping):
    raise InvalidGeometry("coords must be an object, got %r" % (payload,))

  if shape_type == "rect":
    rect = RectShape(
      x=_number(payload, "x"), y=_number(payload, "y"),
      width=_number(payload, "width"), height=_number(payload, "height"),
    )
    if rect.width <= 0 or rect.height <= 0:
      raise InvalidGeometry(
        "rect needs positive width and height, got %rx%r" % (rect.width, rect.height)
      )
    return rect

  if shape_type == "circle":
    circle = CircleShape(
      cx=_number(payload, "cx"), cy=_number(payload, "cy"), r=_number(payload, "r"),
    )
    if circle.r <= 0:
      raise InvalidGeometry("circle needs a positive radius, got %r" % circle.r)
    return circle

  if shape_type == "polygon":
    raw_points = payload.get("points")
    if not isinstance(raw_points, (list, tuple)):
      raise InvalidGeometry("polygon needs a list of points")
    if len(raw_points) < MIN_POLYGON_VERTICES:
      raise InvalidGeometry(
        "polygon needs at least %d points, got %d"
        % (MIN_POLYGON_VERTICES, len(raw_points))
      )
    return PolygonShape(points=[
      QPointF(_number(pt, "x"), _number(pt, "y")) for pt in raw_points
    ])

  raise InvalidGeometry("unknown shape type %r" % (shape_type,))
