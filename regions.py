"""Records exchanged with the storage collaborator: maps, locations, regions."""

from __future__ import annotations

import dataclasses
import math
from typing import Any, Iterable, Mapping

from geometry import InvalidGeometry
from log import get_logger
from shapes import Shape, from_payload, shape_type_of, to_payload

log = get_logger("regions")

DEFAULT_REGION_Z_INDEX = 1


@dataclasses.dataclass
class MapImage:
  """One floor-plan raster bound to a conference (and optionally a location).

  The native image dimensions are immutable after upload and every region
  coordinate is expressed on that pixel grid.
  """
  id: str
  image_url: str
  image_width: int
  image_height: int
  conference_id: str | None = None
  location_id: str | None = None
  name: str = ""
  is_active: bool = True
  created_at: str = ""

  @property
  def has_valid_dimensions(self) -> bool:
    return all(
      isinstance(v, (int, float)) and not isinstance(v, bool)
      and math.isfinite(v) and v > 0
      for v in (self.image_width, self.image_height)
    )

  @classmethod
  def from_record(cls, raw: Mapping[str, Any]) -> MapImage:
    return cls(
      id=str(raw["id"]),
      image_url=raw.get("image_url") or raw.get("image_path") or "",
      image_width=raw.get("image_width") or 0,
      image_height=raw.get("image_height") or 0,
      conference_id=raw.get("conference_id"),
      location_id=raw.get("location_id"),
      name=raw.get("name") or "",
      is_active=raw.get("is_active", True) is not False,
      created_at=raw.get("created_at") or "",
    )


@dataclasses.dataclass
class LocationOption:
  id: str
  name: str
  building: str = ""
  floor: str = ""

  @classmethod
  def from_record(cls, raw: Mapping[str, Any]) -> LocationOption:
    return cls(
      id=str(raw["id"]),
      name=raw.get("name") or "",
      building=raw.get("building") or "",
      floor=raw.get("floor") or "",
    )


@dataclasses.dataclass
class Region:
  """A persisted annotation. ``coords`` stays as the raw payload; call
  geometry() to get a validated shape."""
  id: str | None
  shape_type: str
  coords: Any
  label: str = ""
  map_id: str | None = None
  location_id: str | None = None
  location_name: str | None = None
  qr_code: str | None = None
  z_index: int = 0
  is_active: bool = True

  def geometry(self) -> Shape:
    return from_payload(self.shape_type, self.coords)

  @property
  def display_label(self) -> str:
    return self.location_name or self.label or ""


@dataclasses.dataclass
class RegionDraft:
  """A finished shape on its way to the storage collaborator."""
  location_id: str
  label: str
  shape_type: str
  coords: dict[str, Any]
  z_index: int = DEFAULT_REGION_Z_INDEX
  is_active: bool = True

  @classmethod
  def from_shape(cls, shape: Shape, location_id: str, label: str) -> RegionDraft:
    return cls(
      location_id=location_id, label=label,
      shape_type=shape_type_of(shape), coords=to_payload(shape),
    )

  def to_record(self) -> dict[str, Any]:
    return dataclasses.asdict(self)


def region_from_record(raw: Mapping[str, Any]) -> Region:
  return Region(
    id=None if raw.get("id") is None else str(raw["id"]),
    shape_type=raw.get("shape_type") or "",
    coords=raw.get("coords"),
    label=raw.get("label") or "",
    map_id=raw.get("map_id"),
    location_id=raw.get("location_id"),
    location_name=raw.get("location_name"),
    qr_code=raw.get("qr_code"),
    z_index=_z_index(raw),
    is_active=raw.get("is_active", True) is not False,
  )


def _z_index(raw: Mapping[str, Any]) -> int:
  """Stacking order of a stored region; unreadable values fall back to 0."""
  value = raw.get("z_index")
  if value is None:
    return 0
  try:
    number = float(value)
  except (TypeError, ValueError):
    number = math.nan
  if not math.isfinite(number):
    log.warning("Region %s has unusable z_index %r, using 0", raw.get("id"), value)
    return 0
  return int(number)


def region_to_record(region: Region) -> dict[str, Any]:
  record = dataclasses.asdict(region)
  # location_name is joined in from the locations table, never stored
  record.pop("location_name", None)
  return record


def renderable_regions(regions: Iterable[Region]) -> list[Region]:
  """Active regions whose coords deserialize; the rest are dropped."""
  result = []
  for region in regions:
    if not region.is_active:
      continue
    try:
      region.geometry()
    except InvalidGeometry:
      continue
    result.append(region)
  return result


def select_active_map(maps: Iterable[MapImage],
                      conference_id: str | None = None) -> MapImage | None:
  """Newest active map, optionally limited to one conference."""
  candidates = [
    m for m in maps
    if m.is_active and (conference_id is None or m.conference_id == conference_id)
  ]
  if not candidates:
    return None
  # ISO-8601 timestamps sort lexically
  return max(candidates, key=lambda m: m.created_at)

