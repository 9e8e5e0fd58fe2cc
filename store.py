"""Local JSON-backed persistence for maps, locations and regions.

A project file holds three tables::

  {
    "maps":      [{"id", "conference_id", "location_id", "name", "image_path",
                   "image_width", "image_height", "is_active", "created_at"}],
    "locations": [{"id", "name", "building", "floor"}],
    "regions":   [{"id", "map_id", "location_id", "qr_code", "label",
                   "shape_type", "coords", "z_index", "is_active"}]
  }

The editor only talks to the RegionStore protocol, so a hosted backend can
stand in for JsonRegionStore without touching the UI.
"""

from __future__ import annotations

import json
import os
import threading
import uuid
from typing import Any, Protocol

from log import get_logger
from regions import (
  LocationOption, MapImage, Region, RegionDraft,
  region_from_record, region_to_record, select_active_map,
)

log = get_logger("store")


class StoreError(Exception):
  """The project file could not be read or written."""


class RegionStore(Protocol):
  def save(self, draft: RegionDraft) -> Region: ...

  def delete(self, region_id: str) -> None: ...

  def list_regions(self) -> list[Region]: ...


def _empty_document() -> dict[str, list]:
  return {"maps": [], "locations": [], "regions": []}


class MapProject:
  """In-memory copy of a project file plus write-through persistence."""

  def __init__(self, path: str):
    self.path = os.path.abspath(path)
    self._lock = threading.Lock()
    self._doc = self._read()

  @property
  def base_dir(self) -> str:
    return os.path.dirname(self.path)

  def _read(self) -> dict[str, Any]:
    if not os.path.exists(self.path):
      log.info("No project at %s, starting empty", self.path)
      return _empty_document()
    try:
      with open(self.path, encoding="utf-8") as f:
        doc = json.load(f)
    except json.JSONDecodeError as e:
      raise StoreError("Corrupted project file %s: %s" % (self.path, e)) from e
    except OSError as e:
      raise StoreError("Cannot read project file %s: %s" % (self.path, e)) from e
    if not isinstance(doc, dict):
      raise StoreError("Project file %s is not a JSON object" % self.path)
    for key, default in _empty_document().items():
      doc.setdefault(key, default)
    return doc

  def _write(self) -> None:
    tmp_path = self.path + ".tmp"
    try:
      os.makedirs(self.base_dir, exist_ok=True)
      with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(self._doc, f, indent=2, ensure_ascii=False)
        f.write("\n")
      os.replace(tmp_path, self.path)
    except OSError as e:
      log.error("Failed to save project %s: %s", self.path, e)
      raise StoreError("Cannot write project file %s: %s" % (self.path, e)) from e

  # -- Queries ----------------------------------------------------------------

  def maps(self) -> list[MapImage]:
    with self._lock:
      return [MapImage.from_record(m) for m in self._doc["maps"]]

  def get_map(self, map_id: str) -> MapImage | None:
    for m in self.maps():
      if m.id == map_id:
        return m
    return None

  def active_map(self, conference_id: str | None = None) -> MapImage | None:
    return select_active_map(self.maps(), conference_id)

  def locations(self) -> list[LocationOption]:
    with self._lock:
      return [LocationOption.from_record(loc) for loc in self._doc["locations"]]

  def regions(self, map_id: str) -> list[Region]:
    names = {loc.id: loc.name for loc in self.locations()}
    with self._lock:
      records = [r for r in self._doc["regions"] if r.get("map_id") == map_id]
    result = []
    for raw in records:
      region = region_from_record(raw)
      region.location_name = names.get(region.location_id)
      result.append(region)
    return result

  def region_store(self, map_id: str) -> JsonRegionStore:
    return JsonRegionStore(self, map_id)

  # -- Mutations --------------------------------------------------------------

  def insert_region(self, map_id: str, draft: RegionDraft) -> Region:
    region = Region(
      id=str(uuid.uuid4()),
      map_id=map_id,
      location_id=draft.location_id,
      label=draft.label,
      shape_type=draft.shape_type,
      coords=dict(draft.coords),
      z_index=draft.z_index,
      is_active=draft.is_active,
    )
    with self._lock:
      self._doc["regions"].append(region_to_record(region))
      try:
        self._write()
      except StoreError:
        self._doc["regions"].pop()
        raise
    log.info("Saved %s region %s on map %s", region.shape_type, region.id, map_id)
    return region

  def remove_region(self, map_id: str, region_id: str) -> None:
    with self._lock:
      before = self._doc["regions"]
      remaining = [
        r for r in before
        if not (r.get("id") == region_id and r.get("map_id") == map_id)
      ]
      if len(remaining) == len(before):
        raise StoreError("No region %s on map %s" % (region_id, map_id))
      self._doc["regions"] = remaining
      try:
        self._write()
      except StoreError:
        self._doc["regions"] = before
        raise
    log.info("Deleted region %s from map %s", region_id, map_id)


class JsonRegionStore:
  """RegionStore for one map of a MapProject."""

  def __init__(self, project: MapProject, map_id: str):
    self.project = project
    self.map_id = map_id

  def save(self, draft: RegionDraft) -> Region:
    return self.project.insert_region(self.map_id, draft)

  def delete(self, region_id: str) -> None:
    self.project.remove_region(self.map_id, region_id)

  def list_regions(self) -> list[Region]:
    return self.project.regions(self.map_id)
