"""Full-surface redraw of a map: base image, regions, in-progress shape."""

from __future__ import annotations

import dataclasses
from typing import Iterable

from PySide6.QtCore import Qt, QPointF, QRectF
from PySide6.QtGui import (
  QBrush, QColor, QFont, QFontDatabase, QImage, QPainter, QPen, QPolygonF,
)

from drawing import DrawingPreview
from geometry import CoordinateTransform, InvalidGeometry
from log import get_logger
from regions import Region
from shapes import CircleShape, PolygonShape, RectShape, Shape, label_anchor, shape_type_of

log = get_logger("render")

STROKE_WIDTH = 2
MARKER_RADIUS = 5
VERTEX_RADIUS = 4
BACKGROUND_COLOR = QColor(245, 245, 245)
PREVIEW_COLOR = QColor(59, 130, 246)

# Label offsets from the shape anchor, in display pixels
_LABEL_OFFSETS = {
  "rect": QPointF(5, 20),
  "circle": QPointF(-30, 0),
  "polygon": QPointF(5, 20),
}


@dataclasses.dataclass(frozen=True)
class RegionStyle:
  color: QColor
  fill_alpha: float
  stroke_alpha: float
  hover_fill_alpha: float
  hover_stroke_alpha: float
  selected_fill_alpha: float
  selected_stroke_alpha: float
  show_labels: bool = True
  label_color: QColor = dataclasses.field(default_factory=lambda: QColor(255, 255, 255))
  label_point_size: int = 11

  def fill_for(self, hovered: bool, selected: bool) -> QColor:
    if selected:
      alpha = self.selected_fill_alpha
    elif hovered:
      alpha = self.hover_fill_alpha
    else:
      alpha = self.fill_alpha
    c = QColor(self.color)
    c.setAlphaF(alpha)
    return c

  def stroke_for(self, hovered: bool, selected: bool) -> QColor:
    if selected:
      alpha = self.selected_stroke_alpha
    elif hovered:
      alpha = self.hover_stroke_alpha
    else:
      alpha = self.stroke_alpha
    c = QColor(self.color)
    c.setAlphaF(alpha)
    return c


EDITOR_STYLE = RegionStyle(
  color=QColor(239, 68, 68),
  fill_alpha=0.3, stroke_alpha=0.8,
  hover_fill_alpha=0.5, hover_stroke_alpha=1.0,
  selected_fill_alpha=0.5, selected_stroke_alpha=1.0,
)

VIEWER_STYLE = RegionStyle(
  color=QColor(59, 130, 246),
  fill_alpha=0.12, stroke_alpha=0.45,
  hover_fill_alpha=0.22, hover_stroke_alpha=0.7,
  selected_fill_alpha=0.35, selected_stroke_alpha=0.9,
  show_labels=False,
)


@dataclasses.dataclass
class RenderSnapshot:
  """Everything one redraw reads. Built fresh after every state change."""
  transform: CoordinateTransform
  regions: list
  image: QImage | None = None
  hovered_region_id: str | None = None
  selected_region_id: str | None = None
  highlighted_region_ids: frozenset = frozenset()
  preview: DrawingPreview | None = None


def paint_order(regions: Iterable[Region]) -> list[Region]:
  """Active regions, lowest z-index first; ties keep list order."""
  return sorted((r for r in regions if r.is_active), key=lambda r: r.z_index)


def render(painter: QPainter, snapshot: RenderSnapshot,
           style: RegionStyle = EDITOR_STYLE) -> None:
  """Clear the surface and draw the whole map state onto it."""
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  canvas = snapshot.transform.canvas_rect()
  painter.fillRect(canvas, BACKGROUND_COLOR)

  if snapshot.image is not None and not snapshot.image.isNull():
    painter.drawImage(snapshot.transform.image_rect(), snapshot.image)

  for region in paint_order(snapshot.regions):
    try:
      shape = region.geometry()
    except InvalidGeometry as e:
      log.warning("Skipping region %s: %s", region.id, e)
      continue
    hovered = region.id is not None and (
      region.id == snapshot.hovered_region_id
      or region.id in snapshot.highlighted_region_ids
    )
    selected = region.id is not None and region.id == snapshot.selected_region_id
    _paint_region(painter, shape, region, snapshot.transform, style, hovered, selected)

  if snapshot.preview is not None:
    _paint_preview(painter, snapshot.preview)


def render_to_image(snapshot: RenderSnapshot,
                    style: RegionStyle = EDITOR_STYLE) -> QImage:
  """Draw the snapshot onto a new image the size of the canvas."""
  t = snapshot.transform
  image = QImage(round(t.canvas_width), round(t.canvas_height),
                 QImage.Format.Format_ARGB32)
  image.fill(QColor(0, 0, 0, 0))
  painter = QPainter(image)
  try:
    render(painter, snapshot, style)
  finally:
    painter.end()
  return image


# -- Regions ------------------------------------------------------------------

def _paint_region(painter: QPainter, shape: Shape, region: Region,
                  transform: CoordinateTransform, style: RegionStyle,
                  hovered: bool, selected: bool) -> None:
  painter.setPen(QPen(style.stroke_for(hovered, selected), STROKE_WIDTH))
  painter.setBrush(QBrush(style.fill_for(hovered, selected)))

  if isinstance(shape, RectShape):
    top_left = transform.to_display_space(QPointF(shape.x, shape.y))
    painter.drawRect(QRectF(
      top_left.x(), top_left.y(),
      transform.to_display_length(shape.width),
      transform.to_display_length(shape.height),
    ))
  elif isinstance(shape, CircleShape):
    center = transform.to_display_space(shape.center)
    r = transform.to_display_length(shape.r)
    painter.drawEllipse(center, r, r)
  elif isinstance(shape, PolygonShape):
    points = [transform.to_display_space(p) for p in shape.points]
    painter.drawPolygon(QPolygonF(points))
  else:
    raise TypeError("not a shape: %r" % (shape,))

  label = region.display_label
  if style.show_labels and label:
    anchor = transform.to_display_space(label_anchor(shape))
    _paint_label(painter, anchor + _LABEL_OFFSETS[shape_type_of(shape)], label, style)


def _paint_label(painter: QPainter, position: QPointF, text: str,
                 style: RegionStyle) -> None:
  font = QFontDatabase.systemFont(QFontDatabase.SystemFont.GeneralFont)
  font.setPointSize(style.label_point_size)
  font.setWeight(QFont.Weight.DemiBold)
  painter.setFont(font)
  painter.setPen(style.label_color)
  painter.drawText(position, text)


# -- In-progress shape --------------------------------------------------------

def _paint_preview(painter: QPainter, preview: DrawingPreview) -> None:
  stroke = QColor(PREVIEW_COLOR)
  stroke.setAlphaF(0.8)
  fill = QColor(PREVIEW_COLOR)
  fill.setAlphaF(0.2)
  painter.setPen(QPen(stroke, STROKE_WIDTH))
  painter.setBrush(QBrush(fill))

  if preview.shape_type == "rect":
    painter.drawRect(preview.rect())
    _paint_marker(painter, preview.start, MARKER_RADIUS)
  elif preview.shape_type == "circle":
    r = preview.radius()
    painter.drawEllipse(preview.start, r, r)
    _paint_marker(painter, preview.start, MARKER_RADIUS)
  elif preview.shape_type == "polygon":
    if len(preview.vertices) > 1:
      painter.drawPolygon(QPolygonF(preview.vertices))
    for vertex in preview.vertices:
      _paint_marker(painter, vertex, VERTEX_RADIUS)
  else:
    raise TypeError("no preview for %r" % (preview.shape_type,))


def _paint_marker(painter: QPainter, center: QPointF, radius: float) -> None:
  painter.setPen(Qt.PenStyle.NoPen)
  painter.setBrush(QBrush(PREVIEW_COLOR))
  painter.drawEllipse(center, radius, radius)
