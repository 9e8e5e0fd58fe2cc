"""Operator editor for drawing location regions over a floor-plan image."""

from __future__ import annotations

import functools
from typing import Any, Callable, TYPE_CHECKING

from PySide6.QtCore import Qt, QEvent, QObject, QPointF, QRunnable, QThreadPool, Signal
from PySide6.QtGui import QBrush, QColor, QCursor, QIcon, QImage, QPainter, QPen, QPixmap, QPolygonF
from PySide6.QtWidgets import (
  QWidget, QHBoxLayout, QVBoxLayout, QPushButton, QButtonGroup, QComboBox,
  QLabel, QListWidget, QListWidgetItem, QMessageBox,
)

from drawing import (
  DrawingSession, DrawingState, InsufficientVertices, NoTargetSelected, MIN_SHAPE_SIZE,
)
from geometry import CoordinateTransform, GeometryError, fit_canvas_size
from hit_test import region_at
from log import get_logger
from regions import LocationOption, MapImage, Region, RegionDraft
from render import EDITOR_STYLE, RenderSnapshot, render
from shapes import SHAPE_LABELS, SHAPE_TYPES
from store import RegionStore

if TYPE_CHECKING:
  from PySide6.QtGui import QPaintEvent, QMouseEvent, QKeyEvent

log = get_logger("editor")

DEFAULT_CANVAS_WIDTH = 800
ICON_SIZE = 24
HOVER_ROW_COLOR = QColor(239, 68, 68, 40)


# -- Icon drawing helpers -----------------------------------------------------

def _make_icon(draw_fn) -> QIcon:
  """Create a QIcon by painting onto a 24x24 pixmap."""
  pixmap = QPixmap(ICON_SIZE, ICON_SIZE)
  pixmap.fill(QColor(0, 0, 0, 0))
  painter = QPainter(pixmap)
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  draw_fn(painter, ICON_SIZE)
  painter.end()
  return QIcon(pixmap)


def _draw_rect_icon(painter: QPainter, size: int) -> None:
  painter.setPen(QPen(QColor(60, 60, 60), 2))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  painter.drawRect(3, 5, size - 6, size - 10)


def _draw_circle_icon(painter: QPainter, size: int) -> None:
  painter.setPen(QPen(QColor(60, 60, 60), 2))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  painter.drawEllipse(3, 3, size - 6, size - 6)


def _draw_polygon_icon(painter: QPainter, size: int) -> None:
  painter.setPen(QPen(QColor(60, 60, 60), 2))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  painter.drawPolygon(QPolygonF([
    QPointF(size * 0.5, 3),
    QPointF(size - 3, size * 0.4),
    QPointF(size * 0.75, size - 3),
    QPointF(size * 0.2, size - 5),
    QPointF(3, size * 0.35),
  ]))


_SHAPE_ICONS = {
  "rect": _draw_rect_icon,
  "circle": _draw_circle_icon,
  "polygon": _draw_polygon_icon,
}


# -- Toolbar ------------------------------------------------------------------

class MapEditorToolbar(QWidget):
  """Location picker, shape picker, polygon actions and the instruction line."""

  shape_changed = Signal(str)
  location_changed = Signal(object)  # location id or None
  finish_requested = Signal()
  cancel_requested = Signal()

  def __init__(self, locations: list[LocationOption], shape_type: str = "rect",
               parent: QWidget | None = None):
    super().__init__(parent)

    layout = QVBoxLayout(self)
    layout.setContentsMargins(0, 0, 0, 0)
    layout.setSpacing(6)

    row = QHBoxLayout()
    row.setSpacing(4)

    row.addWidget(QLabel("Location:"))
    self.location_combo = QComboBox()
    self.location_combo.addItem("-- Select a location --", None)
    for loc in locations:
      self.location_combo.addItem(loc.name, loc.id)
    self.location_combo.currentIndexChanged.connect(self._on_location_index)
    row.addWidget(self.location_combo, 1)

    btn_style = (
      "QPushButton { background: transparent; border: 1px solid #bbb; border-radius: 4px; padding: 2px; }"
      "QPushButton:checked { background: rgba(59, 130, 246, 40); border-color: #3b82f6; }"
      "QPushButton:hover { background: rgba(0, 0, 0, 15); }"
    )
    self._shape_group = QButtonGroup(self)
    self._shape_group.setExclusive(True)
    self._shape_buttons: dict[str, QPushButton] = {}
    for key in SHAPE_TYPES:
      btn = QPushButton()
      btn.setIcon(_make_icon(_SHAPE_ICONS[key]))
      btn.setFixedSize(32, 32)
      btn.setCheckable(True)
      btn.setToolTip(SHAPE_LABELS[key])
      btn.setStyleSheet(btn_style)
      self._shape_group.addButton(btn)
      self._shape_buttons[key] = btn
      row.addWidget(btn)
    self._shape_buttons[shape_type].setChecked(True)
    self._shape_group.buttonClicked.connect(self._on_shape_clicked)

    self.finish_btn = QPushButton("Finish polygon")
    self.finish_btn.setToolTip("Close the polygon (Enter)")
    self.finish_btn.clicked.connect(self.finish_requested.emit)
    self.finish_btn.hide()
    row.addWidget(self.finish_btn)

    self.cancel_btn = QPushButton("Cancel")
    self.cancel_btn.setToolTip("Discard the shape being drawn (Esc)")
    self.cancel_btn.clicked.connect(self.cancel_requested.emit)
    self.cancel_btn.hide()
    row.addWidget(self.cancel_btn)

    layout.addLayout(row)

    self.instruction_label = QLabel("")
    self.instruction_label.setStyleSheet(
      "QLabel { background: rgba(59, 130, 246, 25); color: #1d4ed8;"
      " border: 1px solid rgba(59, 130, 246, 80); border-radius: 4px; padding: 6px; }"
    )
    layout.addWidget(self.instruction_label)

  def _on_location_index(self, index: int) -> None:
    self.location_changed.emit(self.location_combo.itemData(index))

  def _on_shape_clicked(self, btn: QPushButton) -> None:
    self.shape_changed.emit(self._button_to_shape(btn))

  def _button_to_shape(self, btn: QPushButton) -> str:
    for key, candidate in self._shape_buttons.items():
      if candidate is btn:
        return key
    return "rect"

  def current_shape(self) -> str:
    checked = self._shape_group.checkedButton()
    if checked:
      return self._button_to_shape(checked)
    return "rect"

  def current_location_id(self) -> str | None:
    return self.location_combo.currentData()

  def set_active_shape(self, shape_type: str) -> None:
    btn = self._shape_buttons.get(shape_type)
    if btn:
      btn.setChecked(True)

  def select_location(self, location_id: str | None) -> None:
    idx = self.location_combo.findData(location_id) if location_id is not None else 0
    self.location_combo.setCurrentIndex(max(idx, 0))

  def update_state(self, instruction: str, state: DrawingState, vertex_count: int) -> None:
    self.instruction_label.setText(instruction)
    polygon_open = state is DrawingState.POLYGON
    self.finish_btn.setVisible(polygon_open)
    if polygon_open:
      self.finish_btn.setText("Finish polygon (%d points)" % vertex_count)
    self.cancel_btn.setVisible(state is not DrawingState.IDLE)


# -- Canvas -------------------------------------------------------------------

class MapCanvas(QWidget):
  """Drawing surface. Reports pointer input in display space and paints the
  most recent snapshot it was given."""

  pressed = Signal(QPointF)
  moved = Signal(QPointF)
  released = Signal(QPointF)
  left = Signal()

  def __init__(self, parent: QWidget | None = None):
    super().__init__(parent)
    self._snapshot: RenderSnapshot | None = None
    self.setMouseTracking(True)
    self.setCursor(QCursor(Qt.CursorShape.CrossCursor))

  def set_snapshot(self, snapshot: RenderSnapshot) -> None:
    self._snapshot = snapshot
    self.update()

  def snapshot(self) -> RenderSnapshot | None:
    return self._snapshot

  def paintEvent(self, event: QPaintEvent) -> None:
    if self._snapshot is None:
      return
    painter = QPainter(self)
    render(painter, self._snapshot, EDITOR_STYLE)
    painter.end()

  def mousePressEvent(self, event: QMouseEvent) -> None:
    if event.button() == Qt.MouseButton.LeftButton:
      self.pressed.emit(event.position())

  def mouseMoveEvent(self, event: QMouseEvent) -> None:
    self.moved.emit(event.position())

  def mouseReleaseEvent(self, event: QMouseEvent) -> None:
    if event.button() == Qt.MouseButton.LeftButton:
      self.released.emit(event.position())

  def leaveEvent(self, event) -> None:
    self.left.emit()
    super().leaveEvent(event)


# -- Background persistence ---------------------------------------------------

class _TaskSignals(QObject):
  finished = Signal(object)
  failed = Signal(str)


class _PersistenceTask(QRunnable):
  """Runs one store call off the UI thread and reports back via signals."""

  def __init__(self, fn: Callable[[], Any]):
    super().__init__()
    self._fn = fn
    self.signals = _TaskSignals()

  def run(self) -> None:
    try:
      result = self._fn()
    except Exception as e:
      log.error("Persistence task failed: %s", e)
      self.signals.failed.emit(str(e))
      return
    self.signals.finished.emit(result)


# -- Main editor --------------------------------------------------------------

class MapEditor(QWidget):
  """Draw, list and delete the regions of one map."""

  region_saved = Signal(object)
  region_deleted = Signal(str)
  persistence_failed = Signal(str)

  def __init__(self, map_image: MapImage, image: QImage | None,
               locations: list[LocationOption], regions: list[Region],
               store: RegionStore,
               canvas_width: int = DEFAULT_CANVAS_WIDTH,
               min_shape_size: float = MIN_SHAPE_SIZE,
               default_shape: str = "rect",
               thread_pool: QThreadPool | None = None,
               parent: QWidget | None = None):
    super().__init__(parent)
    self._map = map_image
    self._image = image
    self._locations = {loc.id: loc for loc in locations}
    self._regions: list[Region] = list(regions)
    self._store = store
    self._pool = thread_pool or QThreadPool.globalInstance()
    self._pending: set[_TaskSignals] = set()

    self._session = DrawingSession(default_shape, min_shape_size=min_shape_size)
    self._hovered_region_id: str | None = None

    self.setWindowTitle("Map editor: %s" % (map_image.name or map_image.id))
    self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)

    layout = QVBoxLayout(self)

    self._toolbar = MapEditorToolbar(locations, default_shape, self)
    self._toolbar.shape_changed.connect(self.set_shape_type)
    self._toolbar.location_changed.connect(self._on_location_changed)
    self._toolbar.finish_requested.connect(self.finish_polygon)
    self._toolbar.cancel_requested.connect(self.cancel_drawing)
    layout.addWidget(self._toolbar)

    # Raises DegenerateGeometry for maps without usable dimensions
    size = fit_canvas_size(map_image.image_width, map_image.image_height, canvas_width)
    self._canvas = MapCanvas(self)
    self._canvas.setFixedSize(size)
    self._canvas.pressed.connect(self._on_pressed)
    self._canvas.moved.connect(self._on_moved)
    self._canvas.released.connect(self._on_released)
    self._canvas.left.connect(self._on_left)
    layout.addWidget(self._canvas)

    self._list_title = QLabel("")
    self._list_title.setStyleSheet("QLabel { font-weight: bold; }")
    layout.addWidget(self._list_title)

    self._region_list = QListWidget()
    self._region_list.setMouseTracking(True)
    self._region_list.itemEntered.connect(self._on_list_item_entered)
    self._region_list.viewport().installEventFilter(self)
    layout.addWidget(self._region_list)

    self._delete_btn = QPushButton("Delete selected region")
    self._delete_btn.setStyleSheet("QPushButton { color: #b91c1c; }")
    self._delete_btn.clicked.connect(self._delete_selected)
    layout.addWidget(self._delete_btn)

    self._rebuild_region_list()
    self._refresh()

  # -- Accessors --------------------------------------------------------------

  @property
  def session(self) -> DrawingSession:
    return self._session

  @property
  def canvas(self) -> MapCanvas:
    return self._canvas

  @property
  def toolbar(self) -> MapEditorToolbar:
    return self._toolbar

  @property
  def hovered_region_id(self) -> str | None:
    return self._hovered_region_id

  def regions(self) -> list[Region]:
    return list(self._regions)

  def transform(self) -> CoordinateTransform:
    return CoordinateTransform(
      self._canvas.width(), self._canvas.height(),
      self._map.image_width, self._map.image_height,
    )

  def instruction(self) -> str:
    return self._session.instruction()

  # -- State changes ----------------------------------------------------------

  def set_regions(self, regions: list[Region]) -> None:
    """Replace the region list with the store's latest read-back."""
    self._regions = list(regions)
    if self._hovered_region_id not in {r.id for r in self._regions}:
      self._hovered_region_id = None
    self._rebuild_region_list()
    self._refresh()

  def select_location(self, location_id: str | None) -> None:
    self._toolbar.select_location(location_id)

  def set_shape_type(self, shape_type: str) -> None:
    self._session.set_shape_type(shape_type)
    self._toolbar.set_active_shape(shape_type)
    self._refresh()

  def cancel_drawing(self) -> None:
    self._session.cancel()
    self._refresh()

  def finish_polygon(self) -> None:
    try:
      draft = self._session.finish()
    except (InsufficientVertices, NoTargetSelected) as e:
      self._prompt(str(e))
      self._refresh()
      return
    self._submit_draft(draft)
    self._refresh()

  def delete_region(self, region_id: str) -> None:
    log.info("Deleting region %s", region_id)
    store = self._store

    def task():
      store.delete(region_id)
      return region_id, store.list_regions()

    self._submit(task, self._on_region_deleted, "delete")

  def _on_location_changed(self, location_id: str | None) -> None:
    self._session.set_target(self._locations.get(location_id))
    self._refresh()

  # -- Pointer input ----------------------------------------------------------

  def _on_pressed(self, pos: QPointF) -> None:
    try:
      if self._session.shape_type == "polygon":
        self._session.click(pos, self.transform())
      else:
        self._session.pointer_down(pos)
    except NoTargetSelected as e:
      self._prompt(str(e))
    except GeometryError as e:
      log.error("Cannot map pointer to image: %s", e)
    self._refresh()

  def _on_moved(self, pos: QPointF) -> None:
    self._session.pointer_move(pos)
    try:
      hovered = region_at(pos, self._regions, self.transform())
    except GeometryError as e:
      log.error("Hit test failed: %s", e)
      hovered = None
    self._set_hovered(hovered)
    self._refresh()

  def _on_released(self, pos: QPointF) -> None:
    if self._session.state is not DrawingState.TRACKING:
      return
    try:
      draft = self._session.pointer_up(pos, self.transform())
    except GeometryError as e:
      log.error("Cannot map shape to image: %s", e)
      draft = None
    if draft is not None:
      self._submit_draft(draft)
    self._refresh()

  def _on_left(self) -> None:
    self._set_hovered(None)
    self._refresh()

  def _set_hovered(self, region_id: str | None) -> None:
    if region_id == self._hovered_region_id:
      return
    self._hovered_region_id = region_id
    self._sync_list_hover()

  # -- Persistence ------------------------------------------------------------

  def _submit_draft(self, draft: RegionDraft) -> None:
    log.info("Saving %s region for location %s", draft.shape_type, draft.location_id)
    store = self._store

    def task():
      region = store.save(draft)
      return region, store.list_regions()

    self._submit(task, self._on_region_saved, "save")

  def _submit(self, fn: Callable[[], Any], on_done: Callable[[Any], None],
              action: str) -> None:
    """Run ``fn`` on the thread pool; ``on_done`` gets its result on the UI thread."""
    task = _PersistenceTask(fn)
    signals = task.signals
    self._pending.add(signals)
    signals.finished.connect(on_done)
    signals.finished.connect(functools.partial(self._task_done, signals))
    signals.failed.connect(functools.partial(self._on_task_failed, action))
    signals.failed.connect(functools.partial(self._task_done, signals))
    self._pool.start(task)

  def _task_done(self, signals: _TaskSignals, *_args: Any) -> None:
    self._pending.discard(signals)

  def _on_region_saved(self, result: tuple[Region, list[Region]]) -> None:
    region, regions = result
    self.set_regions(regions)
    self.region_saved.emit(region)

  def _on_region_deleted(self, result: tuple[str, list[Region]]) -> None:
    region_id, regions = result
    self.set_regions(regions)
    self.region_deleted.emit(region_id)

  def _on_task_failed(self, action: str, message: str) -> None:
    log.error("Region %s failed: %s", action, message)
    self.persistence_failed.emit(message)
    QMessageBox.warning(self, "Map editor", "Could not %s the region:\n%s" % (action, message))

  # -- Region list ------------------------------------------------------------

  def _rebuild_region_list(self) -> None:
    self._region_list.clear()
    for region in self._regions:
      label = region.display_label or "Unassigned"
      kind = SHAPE_LABELS.get(region.shape_type, region.shape_type)
      item = QListWidgetItem("%s (%s)" % (label, kind))
      item.setData(Qt.ItemDataRole.UserRole, region.id)
      self._region_list.addItem(item)
    self._list_title.setText("Saved regions (%d)" % len(self._regions))
    self._list_title.setVisible(bool(self._regions))
    self._delete_btn.setVisible(bool(self._regions))
    self._sync_list_hover()

  def _sync_list_hover(self) -> None:
    for i in range(self._region_list.count()):
      item = self._region_list.item(i)
      if item.data(Qt.ItemDataRole.UserRole) == self._hovered_region_id:
        item.setBackground(QBrush(HOVER_ROW_COLOR))
      else:
        item.setBackground(QBrush())

  def _on_list_item_entered(self, item: QListWidgetItem) -> None:
    self._set_hovered(item.data(Qt.ItemDataRole.UserRole))
    self._refresh()

  def eventFilter(self, obj: QObject, event: QEvent) -> bool:
    if obj is self._region_list.viewport() and event.type() == QEvent.Type.Leave:
      self._set_hovered(None)
      self._refresh()
    return super().eventFilter(obj, event)

  def _delete_selected(self) -> None:
    item = self._region_list.currentItem()
    if item is None:
      return
    region_id = item.data(Qt.ItemDataRole.UserRole)
    if not region_id:
      return
    answer = QMessageBox.question(
      self, "Map editor", "Delete the region \"%s\"?" % item.text(),
      QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
      QMessageBox.StandardButton.No,
    )
    if answer == QMessageBox.StandardButton.Yes:
      self.delete_region(region_id)

  # -- Redraw -----------------------------------------------------------------

  def _refresh(self) -> None:
    """Push the current state to the toolbar and repaint the canvas."""
    self._toolbar.update_state(
      self._session.instruction(), self._session.state, len(self._session.vertices),
    )
    transform = self.transform()
    self._canvas.set_snapshot(RenderSnapshot(
      transform=transform,
      regions=list(self._regions),
      image=self._image,
      hovered_region_id=self._hovered_region_id,
      preview=self._session.preview(transform),
    ))

  def _prompt(self, message: str) -> None:
    log.info("Prompt: %s", message)
    QMessageBox.warning(self, "Map editor", message)

  # -- Keyboard ---------------------------------------------------------------

  def keyPressEvent(self, event: QKeyEvent) -> None:
    key = event.key()
    if key == Qt.Key.Key_Escape:
      self.cancel_drawing()
    elif key in (Qt.Key.Key_Return, Qt.Key.Key_Enter):
      if self._session.state is DrawingState.POLYGON:
        self.finish_polygon()
    else:
      super().keyPressEvent(event)
