"""Conversion between display space (canvas pixels) and image space.

Image space is the native pixel grid of the uploaded floor plan and is what
gets persisted. Display space is whatever the canvas happens to be rendered
at. The two differ by a single uniform scale factor taken from the widths.
When the canvas aspect ratio does not match the image's, the image covers
image_rect() and the rest of the canvas is left empty.
"""

from __future__ import annotations

import dataclasses
import math

from PySide6.QtCore import QPointF, QRectF, QSize, QSizeF


class GeometryError(ValueError):
  """Base class for geometry problems that refuse the triggering action."""


class DegenerateGeometry(GeometryError):
  """Image or canvas dimensions that cannot produce a usable scale."""


class InvalidGeometry(GeometryError):
  """A persisted coordinate payload that does not describe a valid shape."""


@dataclasses.dataclass(frozen=True)
class CoordinateTransform:
  canvas_width: float
  canvas_height: float
  image_width: float
  image_height: float

  def __post_init__(self) -> None:
    self.scale  # raises DegenerateGeometry for unusable sizes

  @classmethod
  def from_sizes(cls, canvas_size: QSizeF | QSize,
                 image_size: QSizeF | QSize) -> CoordinateTransform:
    return cls(
      float(canvas_size.width()), float(canvas_size.height()),
      float(image_size.width()), float(image_size.height()),
    )

  @property
  def scale(self) -> float:
    """Display pixels per image pixel."""
    if not self.image_width or not math.isfinite(self.image_width):
      raise DegenerateGeometry(
        "image width must be a positive number, got %r" % (self.image_width,)
      )
    scale = self.canvas_width / self.image_width
    if not math.isfinite(scale) or scale <= 0:
      raise DegenerateGeometry(
        "canvas %rx%r cannot display image %rx%r"
        % (self.canvas_width, self.canvas_height,
           self.image_width, self.image_height)
      )
    return scale

  def to_image_space(self, display_point: QPointF) -> QPointF:
    s = self.scale
    return QPointF(display_point.x() / s, display_point.y() / s)

  def to_display_space(self, image_point: QPointF) -> QPointF:
    s = self.scale
    return QPointF(image_point.x() * s, image_point.y() * s)

  def to_image_length(self, length: float) -> float:
    return length / self.scale

  def to_display_length(self, length: float) -> float:
    return length * self.scale

  def canvas_rect(self) -> QRectF:
    return QRectF(0.0, 0.0, self.canvas_width, self.canvas_height)

  def image_rect(self) -> QRectF:
    """Where the whole image lands in display space."""
    s = self.scale
    return QRectF(0.0, 0.0, self.image_width * s, self.image_height * s)


def to_image_space(display_point: QPointF, canvas_size: QSizeF,
                   image_size: QSizeF) -> QPointF:
  """Map a canvas point onto the native image grid."""
  return CoordinateTransform.from_sizes(canvas_size, image_size).to_image_space(display_point)


def to_display_space(image_point: QPointF, canvas_size: QSizeF,
                     image_size: QSizeF) -> QPointF:
  """Map a native image point onto the canvas."""
  return CoordinateTransform.from_sizes(canvas_size, image_size).to_display_space(image_point)


def fit_canvas_size(image_width: int, image_height: int, canvas_width: int) -> QSize:
  """Canvas size with the given width that keeps the image aspect ratio."""
  if image_width <= 0 or image_height <= 0 or canvas_width <= 0:
    raise DegenerateGeometry(
      "cannot fit %rx%r image into a %r px wide canvas"
      % (image_width, image_height, canvas_width)
    )
  return QSize(canvas_width, max(1, round(canvas_width * image_height / image_width)))
