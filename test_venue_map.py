"""Tests for the participant venue map view."""

import pytest
from PySide6.QtCore import QEvent, QPointF, Qt
from PySide6.QtGui import QColor, QImage, QKeyEvent, QMouseEvent, QPainter
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

from regions import MapImage, Region
from render import BACKGROUND_COLOR
from venue_map import VenueMapView


def make_map(location_id=None, w=400, h=300):
  return MapImage(id="m1", image_url="plan.png", image_width=w, image_height=h,
                  location_id=location_id, name="Ground floor")


def make_image(w=400, h=300):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(255, 255, 255))
  return img


def make_split_plan(w, h):
  """Red top half, green bottom half."""
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(255, 0, 0))
  painter = QPainter(img)
  painter.fillRect(0, h // 2, w, h - h // 2, QColor(0, 255, 0))
  painter.end()
  return img


def make_regions():
  return [
    # Display 10..60 x 10..40 at scale 0.5
    Region(id="r1", shape_type="rect", coords={"x": 20, "y": 20, "width": 100, "height": 60},
           location_name="Hall A", qr_code="QR-1"),
    Region(id="r2", shape_type="circle", coords={"cx": 300, "cy": 200, "r": 40},
           label="Lobby"),
    Region(id="r3", shape_type="rect", coords={"x": 0, "y": 0, "width": 400, "height": 300},
           is_active=False),
    Region(id="r4", shape_type="polygon", coords={"points": []}),
  ]


def make_view(location_id=None, current_location_id=None):
  view = VenueMapView(make_map(location_id), make_image(), make_regions(),
                      current_location_id=current_location_id)
  view.resize(200, 150)
  return view


def mouse(event_type, x, y):
  pos = QPointF(x, y)
  return QMouseEvent(event_type, pos, pos, Qt.MouseButton.LeftButton,
                     Qt.MouseButton.LeftButton, Qt.KeyboardModifier.NoModifier)


def key(k):
  return QKeyEvent(QEvent.Type.KeyPress, k, Qt.KeyboardModifier.NoModifier)


def grab_pixel(view, x, y):
  c = view.grab().toImage().pixelColor(x, y)
  return c.red(), c.green(), c.blue()


class TestLayout:
  def test_keeps_image_aspect_ratio(self):
    view = make_view()
    assert view.hasHeightForWidth()
    assert view.heightForWidth(200) == 150
    assert view.transform().scale == pytest.approx(0.5)

  def test_off_aspect_window_keeps_plan_under_regions(self):
    # Top-level windows are free to take any shape
    plan = make_split_plan(800, 600)
    region = Region(id="south", shape_type="rect",
                    coords={"x": 0, "y": 400, "width": 200, "height": 100})
    view = VenueMapView(make_map(w=800, h=600), plan, [region])
    view.resize(400, 400)

    t = view.transform()
    assert (t.canvas_width, t.canvas_height) == (400, 300)
    green_row = t.to_display_space(QPointF(10, 310))
    r, g, _ = grab_pixel(view, round(green_row.x()), round(green_row.y()))
    assert g > 200 and r < 50

    inside = t.to_display_space(QPointF(100, 450))
    assert view.region_at(inside).id == "south"
    r, g, b = grab_pixel(view, round(inside.x()), round(inside.y()))
    assert g > r and b > r

    # Below the plan only the background shows
    assert view.region_at(QPointF(50, 350)) is None
    assert grab_pixel(view, 50, 350) == (
      BACKGROUND_COLOR.red(), BACKGROUND_COLOR.green(), BACKGROUND_COLOR.blue())

  def test_wide_window_fits_by_height(self):
    view = make_view()
    view.resize(400, 150)
    t = view.transform()
    assert (t.canvas_width, t.canvas_height) == (200, 150)
    assert t.scale == pytest.approx(0.5)

  def test_placeholder_aspect_without_map(self):
    view = VenueMapView()
    assert view.heightForWidth(320) == 180

  def test_only_renderable_regions_are_kept(self):
    assert [r.id for r in make_view().regions()] == ["r1", "r2"]


class TestPlaceholder:
  def test_no_map(self):
    view = VenueMapView()
    view.resize(200, 120)
    assert view.has_map() is False
    assert view.region_at(QPointF(10, 10)) is None
    assert grab_pixel(view, 2, 2) == (240, 240, 240)

  def test_map_without_dimensions(self):
    view = VenueMapView(make_map(w=0, h=0), make_image(), make_regions())
    assert view.has_map() is False

  def test_map_without_loaded_image(self):
    view = VenueMapView(make_map(), None, make_regions())
    assert view.has_map() is False


class TestHoverAndSelect:
  def test_hover_sets_region(self):
    view = make_view()
    view.mouseMoveEvent(mouse(QEvent.Type.MouseMove, 30, 20))
    assert view.hovered_region_id == "r1"
    view.mouseMoveEvent(mouse(QEvent.Type.MouseMove, 190, 5))
    assert view.hovered_region_id is None

  def test_leave_clears_hover(self):
    view = make_view()
    view.mouseMoveEvent(mouse(QEvent.Type.MouseMove, 30, 20))
    view.leaveEvent(QEvent(QEvent.Type.Leave))
    assert view.hovered_region_id is None

  def test_click_selects_and_emits(self):
    view = make_view()
    picked = []
    view.region_selected.connect(picked.append)
    view.mousePressEvent(mouse(QEvent.Type.MouseButtonPress, 150, 100))
    assert [r.id for r in picked] == ["r2"]
    assert view.selected_region_id == "r2"

  def test_click_on_empty_space_keeps_selection(self):
    view = make_view()
    picked = []
    view.region_selected.connect(picked.append)
    view.mousePressEvent(mouse(QEvent.Type.MouseButtonPress, 30, 20))
    view.mousePressEvent(mouse(QEvent.Type.MouseButtonPress, 190, 5))
    assert [r.id for r in picked] == ["r1"]
    assert view.selected_region_id == "r1"

  @pytest.mark.parametrize("k", [Qt.Key.Key_Return, Qt.Key.Key_Enter, Qt.Key.Key_Space])
  def test_keyboard_selects_hovered(self, k):
    view = make_view()
    picked = []
    view.region_selected.connect(picked.append)
    view.mouseMoveEvent(mouse(QEvent.Type.MouseMove, 30, 20))
    view.keyPressEvent(key(k))
    assert [r.id for r in picked] == ["r1"]

  def test_keyboard_without_hover_does_nothing(self):
    view = make_view()
    picked = []
    view.region_selected.connect(picked.append)
    view.keyPressEvent(key(Qt.Key.Key_Space))
    assert picked == []

  def test_clear_selection(self):
    view = make_view()
    view.mousePressEvent(mouse(QEvent.Type.MouseButtonPress, 30, 20))
    view.clear_selection()
    assert view.selected_region_id is None

  def test_set_map_resets_state(self):
    view = make_view()
    view.mousePressEvent(mouse(QEvent.Type.MouseButtonPress, 30, 20))
    view.set_map(make_map(), make_image(), make_regions()[1:2])
    assert view.selected_region_id is None
    assert [r.id for r in view.regions()] == ["r2"]

  def test_tooltip_text(self):
    regions = make_regions()
    assert VenueMapView._tooltip(regions[0]) == "Hall A (QR: QR-1)"
    assert VenueMapView._tooltip(regions[1]) == "Lobby"


class TestHighlight:
  def test_current_location_highlights_regions(self):
    plain = grab_pixel(make_view("hall"), 35, 25)
    here = grab_pixel(make_view("hall", current_location_id="hall"), 35, 25)
    elsewhere = grab_pixel(make_view("hall", current_location_id="lobby"), 35, 25)
    assert elsewhere == plain
    # Stronger blue tint means less red over the white plan
    assert here[0] < plain[0]
