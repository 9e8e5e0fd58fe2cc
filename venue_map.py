"""Read-only participant map: shows the venue regions and lets the user pick one."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PySide6.QtCore import Qt, QPointF, QSize, Signal
from PySide6.QtGui import QColor, QCursor, QImage, QPainter
from PySide6.QtWidgets import QSizePolicy, QToolTip, QWidget

from geometry import CoordinateTransform, GeometryError
from hit_test import region_at
from log import get_logger
from regions import MapImage, Region, renderable_regions
from render import BACKGROUND_COLOR, VIEWER_STYLE, RenderSnapshot, render

if TYPE_CHECKING:
  from PySide6.QtGui import QPaintEvent, QMouseEvent, QKeyEvent

log = get_logger("viewer")

PLACEHOLDER_TEXT = "No venue map is available. Please contact the organizers."
PLACEHOLDER_ASPECT = 9 / 16


class VenueMapView(QWidget):
  """Scales the map to the widget width and keeps the image aspect ratio."""

  region_selected = Signal(object)  # Region

  def __init__(self, map_image: MapImage | None = None, image: QImage | None = None,
               regions: list[Region] | None = None,
               current_location_id: str | None = None,
               parent: QWidget | None = None):
    super().__init__(parent)
    self._map: MapImage | None = None
    self._image: QImage | None = None
    self._regions: list[Region] = []
    self._current_location_id = current_location_id
    self._hovered_region_id: str | None = None
    self._selected_region_id: str | None = None

    self.setMouseTracking(True)
    self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
    policy = QSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Preferred)
    policy.setHeightForWidth(True)
    self.setSizePolicy(policy)
    self.setMinimumWidth(200)

    self.set_map(map_image, image, regions or [])

  # -- Data -------------------------------------------------------------------

  def set_map(self, map_image: MapImage | None, image: QImage | None,
              regions: list[Region]) -> None:
    self._map = map_image
    self._image = image
    self._regions = renderable_regions(regions)
    self._hovered_region_id = None
    self._selected_region_id = None
    self.updateGeometry()
    self.update()

  def set_current_location(self, location_id: str | None) -> None:
    self._current_location_id = location_id
    self.update()

  def has_map(self) -> bool:
    return bool(
      self._map is not None and self._map.image_url
      and self._map.has_valid_dimensions
      and self._image is not None and not self._image.isNull()
    )

  def regions(self) -> list[Region]:
    return list(self._regions)

  @property
  def selected_region_id(self) -> str | None:
    return self._selected_region_id

  @property
  def hovered_region_id(self) -> str | None:
    return self._hovered_region_id

  def clear_selection(self) -> None:
    self._selected_region_id = None
    self.update()

  def transform(self) -> CoordinateTransform:
    """Largest image-shaped canvas that fits the widget, anchored top-left.

    Top-level windows ignore heightForWidth, so the widget itself can have
    any aspect ratio.
    """
    aspect = self._aspect()
    width = min(float(self.width()), self.height() / aspect)
    return CoordinateTransform(
      width, width * aspect, self._map.image_width, self._map.image_height,
    )

  # -- Layout -----------------------------------------------------------------

  def _aspect(self) -> float:
    if self._map is not None and self._map.has_valid_dimensions:
      return self._map.image_height / self._map.image_width
    return PLACEHOLDER_ASPECT

  def hasHeightForWidth(self) -> bool:
    return True

  def heightForWidth(self, width: int) -> int:
    return round(width * self._aspect())

  def sizeHint(self) -> QSize:
    return QSize(640, self.heightForWidth(640))

  # -- Selection --------------------------------------------------------------

  def region_at(self, pos: QPointF) -> Region | None:
    if not self.has_map():
      return None
    try:
      region_id = region_at(pos, self._regions, self.transform())
    except GeometryError as e:
      log.error("Hit test failed: %s", e)
      return None
    return self._region_by_id(region_id)

  def _region_by_id(self, region_id: str | None) -> Region | None:
    if region_id is None:
      return None
    for region in self._regions:
      if region.id == region_id:
        return region
    return None

  def select_region(self, region: Region | None) -> None:
    if region is None:
      return
    self._selected_region_id = region.id
    log.debug("Selected region %s (%s)", region.id, region.display_label)
    self.update()
    self.region_selected.emit(region)

  # -- Events -----------------------------------------------------------------

  def paintEvent(self, event: QPaintEvent) -> None:
    painter = QPainter(self)
    if not self.has_map():
      painter.fillRect(self.rect(), QColor(240, 240, 240))
      painter.setPen(QColor(110, 110, 110))
      painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter | Qt.TextFlag.TextWordWrap,
                       PLACEHOLDER_TEXT)
      painter.end()
      return

    painter.fillRect(self.rect(), BACKGROUND_COLOR)
    highlighted = frozenset()
    if self._current_location_id and self._map.location_id == self._current_location_id:
      highlighted = frozenset(r.id for r in self._regions)
    render(painter, RenderSnapshot(
      transform=self.transform(),
      regions=self._regions,
      image=self._image,
      hovered_region_id=self._hovered_region_id,
      selected_region_id=self._selected_region_id,
      highlighted_region_ids=highlighted,
    ), VIEWER_STYLE)
    painter.end()

  def mouseMoveEvent(self, event: QMouseEvent) -> None:
    region = self.region_at(event.position())
    new_id = region.id if region else None
    if new_id != self._hovered_region_id:
      self._hovered_region_id = new_id
      if region is not None:
        self.setCursor(QCursor(Qt.CursorShape.PointingHandCursor))
        QToolTip.showText(event.globalPosition().toPoint(), self._tooltip(region), self)
      else:
        self.unsetCursor()
        QToolTip.hideText()
      self.update()

  def mousePressEvent(self, event: QMouseEvent) -> None:
    if event.button() != Qt.MouseButton.LeftButton:
      return
    self.select_region(self.region_at(event.position()))

  def keyPressEvent(self, event: QKeyEvent) -> None:
    if event.key() in (Qt.Key.Key_Return, Qt.Key.Key_Enter, Qt.Key.Key_Space):
      self.select_region(self._region_by_id(self._hovered_region_id))
      return
    super().keyPressEvent(event)

  def leaveEvent(self, event) -> None:
    if self._hovered_region_id is not None:
      self._hovered_region_id = None
      self.unsetCursor()
      self.update()
    super().leaveEvent(event)

  @staticmethod
  def _tooltip(region: Region) -> str:
    label = region.display_label or "Unnamed area"
    if region.qr_code:
      return "%s (QR: %s)" % (label, region.qr_code)
    return label
