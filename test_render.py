"""Tests for the map render pipeline (pixel-level, offscreen)."""

from unittest.mock import patch

from PySide6.QtCore import QPointF
from PySide6.QtGui import QColor, QImage
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from drawing import DrawingPreview
from geometry import CoordinateTransform
from regions import Region
from render import (
  BACKGROUND_COLOR, EDITOR_STYLE, VIEWER_STYLE, RenderSnapshot,
  paint_order, render_to_image,
)

CANVAS = CoordinateTransform(100, 100, 100, 100)


def rect_region(region_id, x, y, w, h, **kwargs):
  return Region(id=region_id, shape_type="rect",
                coords={"x": x, "y": y, "width": w, "height": h}, **kwargs)


def pixel(image, x, y):
  c = image.pixelColor(x, y)
  return c.red(), c.green(), c.blue()


def make_base_image(w, h, color):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(color)
  return img


class TestBackground:
  def test_empty_snapshot_fills_background(self):
    image = render_to_image(RenderSnapshot(transform=CANVAS, regions=[]))
    assert (image.width(), image.height()) == (100, 100)
    expected = (BACKGROUND_COLOR.red(), BACKGROUND_COLOR.green(), BACKGROUND_COLOR.blue())
    assert pixel(image, 50, 50) == expected

  def test_base_image_is_scaled_to_canvas(self):
    base = make_base_image(50, 50, QColor(0, 200, 0))
    snapshot = RenderSnapshot(transform=CoordinateTransform(100, 100, 50, 50),
                              regions=[], image=base)
    image = render_to_image(snapshot)
    assert pixel(image, 95, 95) == (0, 200, 0)

  def test_base_image_keeps_aspect_on_taller_canvas(self):
    base = make_base_image(100, 50, QColor(0, 200, 0))
    snapshot = RenderSnapshot(transform=CoordinateTransform(100, 100, 100, 50),
                              regions=[], image=base)
    image = render_to_image(snapshot)
    assert pixel(image, 50, 25) == (0, 200, 0)
    expected = (BACKGROUND_COLOR.red(), BACKGROUND_COLOR.green(), BACKGROUND_COLOR.blue())
    assert pixel(image, 50, 75) == expected


class TestRegions:
  def test_region_is_tinted(self):
    snapshot = RenderSnapshot(transform=CANVAS, regions=[rect_region("r", 10, 10, 40, 40)])
    image = render_to_image(snapshot, EDITOR_STYLE)
    r, g, b = pixel(image, 30, 30)
    assert r > g + 20
    assert r > b + 20
    # Outside the region only the background shows
    assert pixel(image, 80, 80) == pixel(render_to_image(RenderSnapshot(CANVAS, [])), 80, 80)

  def test_region_drawn_at_display_scale(self):
    # Image is twice the canvas, so image rect 100..160 lands on 50..80
    half = CoordinateTransform(100, 100, 200, 200)
    snapshot = RenderSnapshot(transform=half, regions=[rect_region("r", 100, 100, 60, 60)])
    image = render_to_image(snapshot)
    r, g, _ = pixel(image, 65, 65)
    assert r > g + 20
    assert pixel(image, 30, 30) == pixel(image, 5, 5)

  def test_hover_is_stronger_than_idle(self):
    regions = [rect_region("r", 10, 10, 40, 40)]
    idle = render_to_image(RenderSnapshot(CANVAS, regions))
    hovered = render_to_image(RenderSnapshot(CANVAS, regions, hovered_region_id="r"))
    assert pixel(hovered, 30, 30)[1] < pixel(idle, 30, 30)[1]

  def test_highlight_matches_hover(self):
    regions = [rect_region("r", 10, 10, 40, 40)]
    hovered = render_to_image(RenderSnapshot(CANVAS, regions, hovered_region_id="r"))
    highlighted = render_to_image(RenderSnapshot(
      CANVAS, regions, highlighted_region_ids=frozenset({"r"})))
    assert pixel(hovered, 30, 30) == pixel(highlighted, 30, 30)

  def test_viewer_selection_is_strongest(self):
    regions = [rect_region("r", 10, 10, 40, 40)]
    hovered = render_to_image(
      RenderSnapshot(CANVAS, regions, hovered_region_id="r"), VIEWER_STYLE)
    selected = render_to_image(
      RenderSnapshot(CANVAS, regions, selected_region_id="r"), VIEWER_STYLE)
    r_h, _, b_h = pixel(hovered, 30, 30)
    r_s, _, b_s = pixel(selected, 30, 30)
    assert b_h > r_h
    assert r_s < r_h

  def test_inactive_region_not_painted(self):
    regions = [rect_region("r", 10, 10, 40, 40, is_active=False)]
    image = render_to_image(RenderSnapshot(CANVAS, regions))
    assert pixel(image, 30, 30) == pixel(image, 80, 80)

  def test_invalid_region_is_skipped(self):
    regions = [
      Region(id="bad", shape_type="circle", coords={"cx": 10, "cy": 10, "r": -1}),
      rect_region("good", 60, 60, 30, 30),
    ]
    image = render_to_image(RenderSnapshot(CANVAS, regions))
    r, g, _ = pixel(image, 75, 75)
    assert r > g + 20

  def test_circle_and_polygon(self):
    regions = [
      Region(id="c", shape_type="circle", coords={"cx": 25, "cy": 25, "r": 15}),
      Region(id="p", shape_type="polygon", coords={"points": [
        {"x": 60, "y": 60}, {"x": 95, "y": 60}, {"x": 95, "y": 95}, {"x": 60, "y": 95},
      ]}),
    ]
    image = render_to_image(RenderSnapshot(CANVAS, regions))
    for x, y in [(25, 25), (85, 85)]:
      r, g, _ = pixel(image, x, y)
      assert r > g + 20
    # Corner of the circle's bounding box is outside the circle
    assert pixel(image, 12, 12) == pixel(image, 50, 5)


class TestPreview:
  def test_rect_preview_is_blue(self):
    preview = DrawingPreview("rect", start=QPointF(20, 20), end=QPointF(80, 80))
    image = render_to_image(RenderSnapshot(CANVAS, [], preview=preview))
    r, _, b = pixel(image, 60, 60)
    assert b > r + 20

  def test_polygon_preview_marks_vertices(self):
    preview = DrawingPreview("polygon", vertices=[QPointF(50, 50)])
    image = render_to_image(RenderSnapshot(CANVAS, [], preview=preview))
    r, _, b = pixel(image, 50, 50)
    assert b > r + 50


class TestPaintOrder:
  def test_sorted_by_z_index_stable(self):
    a = rect_region("a", 0, 0, 1, 1, z_index=3)
    b = rect_region("b", 0, 0, 1, 1, z_index=1)
    c = rect_region("c", 0, 0, 1, 1, z_index=3)
    d = rect_region("d", 0, 0, 1, 1, z_index=0, is_active=False)
    assert [r.id for r in paint_order([a, b, c, d])] == ["b", "a", "c"]

  def test_style_alphas(self):
    assert EDITOR_STYLE.fill_for(False, False).alphaF() < EDITOR_STYLE.fill_for(True, False).alphaF()
    assert VIEWER_STYLE.fill_for(False, True).alphaF() > VIEWER_STYLE.fill_for(True, False).alphaF()
    assert VIEWER_STYLE.show_labels is False

  def test_viewer_hover_strengthens_stroke(self):
    assert VIEWER_STYLE.stroke_for(True, False).alphaF() > VIEWER_STYLE.stroke_for(False, False).alphaF()


class TestLabels:
  def _label_positions(self, region, transform=CANVAS):
    with patch("render._paint_label") as paint_label:
      render_to_image(RenderSnapshot(transform, [region]))
    return [c.args[1] for c in paint_label.call_args_list]

  def test_rect_label_offset_from_top_left(self):
    region = rect_region("r", 10, 20, 30, 30, label="Hall A")
    assert self._label_positions(region) == [QPointF(15, 40)]

  def test_circle_label_scaled_with_canvas(self):
    region = Region(id="c", shape_type="circle", coords={"cx": 100, "cy": 100, "r": 20},
                    label="Lobby")
    half = CoordinateTransform(100, 100, 200, 200)
    assert self._label_positions(region, half) == [QPointF(20, 50)]

  def test_polygon_label_from_first_vertex(self):
    region = Region(id="p", shape_type="polygon", label="Stage", coords={"points": [
      {"x": 40, "y": 10}, {"x": 90, "y": 10}, {"x": 90, "y": 60},
    ]})
    assert self._label_positions(region) == [QPointF(45, 30)]

  def test_unlabelled_region_has_no_label(self):
    assert self._label_positions(rect_region("r", 10, 20, 30, 30)) == []
