from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table
from PySide6.QtCore import QThreadPool
from PySide6.QtWidgets import QApplication, QWidget

from geometry import CoordinateTransform, GeometryError, fit_canvas_size
from log import LOG_PATH, get_logger, set_console_level
from map_editor import MapEditor
from platform_utils import default_project_path, load_qimage, save_qimage
from regions import MapImage, renderable_regions
from render import EDITOR_STYLE, RenderSnapshot, render_to_image
from shapes import SHAPE_LABELS, SHAPE_TYPES
from store import MapProject, StoreError
from venue_map import VenueMapView

log = get_logger("main")

# When frozen as exe, config lives next to the executable
if getattr(sys, "frozen", False):
  APP_DIR = os.path.dirname(sys.executable)
else:
  APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(APP_DIR, "config.json")


CONFIG_VERSION = 2

DEFAULT_CONFIG = {
  "config_version": CONFIG_VERSION,
  "project_path": default_project_path(),
  "canvas_width": 800,
  "min_shape_size": 10,
  "default_shape": "rect",
}


def migrate_config(config: dict[str, Any]) -> bool:
  """Fill in missing keys from defaults and bump version. Returns True if changed."""
  version = config.get("config_version", 1)
  changed = False

  for key, default_val in DEFAULT_CONFIG.items():
    if key not in config:
      config[key] = default_val
      log.info("Config migration: added '%s' = %r", key, default_val)
      changed = True

  if config.get("default_shape") not in SHAPE_TYPES:
    log.warning("Unknown default_shape %r, using 'rect'", config.get("default_shape"))
    config["default_shape"] = "rect"
    changed = True

  if version < CONFIG_VERSION:
    config["config_version"] = CONFIG_VERSION
    changed = True
    log.info("Config migrated from v%d to v%d", version, CONFIG_VERSION)

  return changed


def load_config() -> dict[str, Any]:
  if not os.path.exists(CONFIG_PATH):
    log.info("No config found, creating defaults at %s", CONFIG_PATH)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  try:
    with open(CONFIG_PATH) as f:
      config = json.load(f)
  except json.JSONDecodeError as e:
    log.error("Corrupted config file, resetting to defaults: %s", e)
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)
  except OSError as e:
    log.error("Cannot read config file: %s", e)
    return dict(DEFAULT_CONFIG)

  if not isinstance(config, dict):
    log.error("Config file is not a JSON object, resetting to defaults")
    save_config(DEFAULT_CONFIG)
    return dict(DEFAULT_CONFIG)

  if migrate_config(config):
    save_config(config)
  return config


def save_config(config: dict[str, Any]) -> None:
  try:
    with open(CONFIG_PATH, "w") as f:
      json.dump(config, f, indent=2)
      f.write("\n")
  except OSError as e:
    log.error("Failed to save config: %s", e)


def resolve_map(project: MapProject, map_id: str | None = None,
                conference_id: str | None = None) -> MapImage:
  """Explicit map id wins; otherwise the newest active map."""
  if map_id:
    found = project.get_map(map_id)
    if found is None:
      raise LookupError("No map %s in %s" % (map_id, project.path))
    return found
  found = project.active_map(conference_id)
  if found is None:
    raise LookupError("No active map in %s" % project.path)
  return found


class VenueMapApp:
  """Loads config and project, then opens the editor or the participant view."""

  def __init__(self, project_path: str | None = None,
               config: dict[str, Any] | None = None) -> None:
    self.config: dict[str, Any] = config if config is not None else load_config()
    self.project = MapProject(project_path or self.config["project_path"])
    self.window: QWidget | None = None

  def _load_image(self, map_image: MapImage):
    try:
      return load_qimage(map_image.image_url, self.project.base_dir)
    except OSError as e:
      log.error("Cannot load map image for %s: %s", map_image.id, e)
      return None

  def open_editor(self, map_id: str | None = None) -> MapEditor:
    map_image = resolve_map(self.project, map_id)
    editor = MapEditor(
      map_image=map_image,
      image=self._load_image(map_image),
      locations=self.project.locations(),
      regions=self.project.regions(map_image.id),
      store=self.project.region_store(map_image.id),
      canvas_width=self.config.get("canvas_width", 800),
      min_shape_size=self.config.get("min_shape_size", 10),
      default_shape=self.config.get("default_shape", "rect"),
    )
    editor.persistence_failed.connect(
      lambda msg: log.warning("Editor reported persistence failure: %s", msg))
    self.window = editor
    return editor

  def open_viewer(self, conference_id: str | None = None,
                  current_location_id: str | None = None) -> VenueMapView:
    try:
      map_image = resolve_map(self.project, conference_id=conference_id)
    except LookupError as e:
      log.info("%s, showing placeholder", e)
      view = VenueMapView(current_location_id=current_location_id)
    else:
      view = VenueMapView(
        map_image=map_image,
        image=self._load_image(map_image),
        regions=self.project.regions(map_image.id),
        current_location_id=current_location_id,
      )
      view.setWindowTitle(map_image.name or "Venue map")
    view.region_selected.connect(
      lambda region: log.info("Participant picked %s", region.display_label))
    self.window = view
    return view

  def run(self, window: QWidget) -> int:
    app = QApplication.instance()
    app.aboutToQuit.connect(self._shutdown)
    window.show()
    window.raise_()
    window.activateWindow()
    log.info("VenueMap running (project=%s)", self.project.path)
    return app.exec()

  def _shutdown(self) -> None:
    # Let in-flight saves reach the project file before exit
    QThreadPool.globalInstance().waitForDone()
    log.info("VenueMap exiting")


# -- Command line -------------------------------------------------------------

cli = typer.Typer(
  name="venuemap",
  help="Draw and browse location regions on venue floor plans",
  no_args_is_help=True,
)
console = Console()


@cli.callback()
def main(
  verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging on stderr"),
):
  """Draw and browse location regions on venue floor plans."""
  if verbose:
    set_console_level(logging.DEBUG)


def _qt_app(headless: bool = False) -> QApplication:
  if headless:
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
  return QApplication.instance() or QApplication(sys.argv)


def _open_project(project: Path) -> MapProject:
  try:
    return MapProject(str(project))
  except StoreError as e:
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)


@cli.command()
def edit(
  project: Path = typer.Argument(None, help="Project JSON file (defaults to config)"),
  map_id: str = typer.Option(None, "--map-id", "-m", help="Map to edit (default: newest active)"),
):
  """Open the operator editor on a map."""
  _qt_app()
  try:
    shell = VenueMapApp(str(project) if project else None)
    window = shell.open_editor(map_id)
  except (StoreError, LookupError, GeometryError) as e:
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)
  raise typer.Exit(shell.run(window))


@cli.command()
def view(
  project: Path = typer.Argument(None, help="Project JSON file (defaults to config)"),
  conference_id: str = typer.Option(None, "--conference-id", "-c", help="Conference to show"),
  current_location: str = typer.Option(
    None, "--current-location", "-l", help="Highlight regions when the map belongs to this location"
  ),
):
  """Open the read-only participant map."""
  _qt_app()
  try:
    shell = VenueMapApp(str(project) if project else None)
  except StoreError as e:
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)
  window = shell.open_viewer(conference_id, current_location)
  raise typer.Exit(shell.run(window))


@cli.command()
def export(
  project: Path = typer.Argument(..., help="Project JSON file"),
  output: Path = typer.Argument(..., help="Image to write (png/jpg)"),
  map_id: str = typer.Option(None, "--map-id", "-m", help="Map to render (default: newest active)"),
  width: int = typer.Option(800, "--width", "-w", help="Output width in pixels"),
):
  """Render a map with its regions to an image file."""
  _qt_app(headless=True)
  proj = _open_project(project)
  try:
    map_image = resolve_map(proj, map_id)
    size = fit_canvas_size(map_image.image_width, map_image.image_height, width)
    image = load_qimage(map_image.image_url, proj.base_dir)
  except (LookupError, GeometryError, OSError) as e:
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)

  regions = renderable_regions(proj.regions(map_image.id))
  snapshot = RenderSnapshot(
    transform=CoordinateTransform(
      size.width(), size.height(), map_image.image_width, map_image.image_height,
    ),
    regions=regions,
    image=image,
  )
  if not save_qimage(render_to_image(snapshot, EDITOR_STYLE), str(output)):
    console.print(f"[red]Error: could not write {output} (see {LOG_PATH})[/red]")
    raise typer.Exit(1)
  console.print(
    f"[green]Exported[/green] {len(regions)} regions on "
    f"{map_image.name or map_image.id} to {output}"
  )


@cli.command("regions")
def list_regions(
  project: Path = typer.Argument(..., help="Project JSON file"),
  map_id: str = typer.Option(None, "--map-id", "-m", help="Map to list (default: newest active)"),
):
  """List the regions drawn on a map."""
  proj = _open_project(project)
  try:
    map_image = resolve_map(proj, map_id)
  except LookupError as e:
    console.print(f"[red]Error: {e}[/red]")
    raise typer.Exit(1)

  table = Table(title=map_image.name or map_image.id)
  table.add_column("ID", style="cyan", no_wrap=True)
  table.add_column("Label")
  table.add_column("Location")
  table.add_column("Shape")
  table.add_column("Z", justify="right")
  table.add_column("Active", justify="center")
  for region in proj.regions(map_image.id):
    table.add_row(
      region.id or "",
      region.label or "",
      region.location_name or region.location_id or "",
      SHAPE_LABELS.get(region.shape_type, region.shape_type),
      str(region.z_index),
      "yes" if region.is_active else "no",
    )
  console.print(table)


if __name__ == "__main__":
  cli()
