"""Platform-specific paths and image loading/saving."""

import os
import platform
import urllib.parse
import urllib.request

import httpx
from PySide6.QtGui import QImage

from log import get_logger

SYSTEM = platform.system()
PROJECT_FILENAME = "venuemap.json"
HTTP_TIMEOUT_SECONDS = 15

log = get_logger("platform")


def default_project_path():
  """Return a sensible default project file location per platform."""
  home = os.path.expanduser("~")

  if SYSTEM == "Windows":
    base = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
    return os.path.join(base, "VenueMap", PROJECT_FILENAME)
  elif SYSTEM == "Darwin":
    return os.path.join(home, "Library", "Application Support", "VenueMap", PROJECT_FILENAME)
  else:
    data = os.environ.get("XDG_DATA_HOME", os.path.join(home, ".local", "share"))
    return os.path.join(data, "venuemap", PROJECT_FILENAME)


def load_qimage(source, base_dir=None):
  """Load a map image from a local path, file:// URL or http(s) URL.

  Relative paths resolve against ``base_dir`` (normally the project folder).
  Raises OSError if nothing decodable is found.
  """
  if not source:
    raise OSError("No image source given")
  parsed = urllib.parse.urlparse(source)

  if parsed.scheme in ("http", "https"):
    try:
      resp = httpx.get(source, timeout=HTTP_TIMEOUT_SECONDS, follow_redirects=True)
      resp.raise_for_status()
    except httpx.HTTPError as e:
      raise OSError("Cannot download %s: %s" % (source, e)) from e
    image = QImage.fromData(resp.content)
    if image.isNull():
      raise OSError("Downloaded data from %s is not an image" % source)
    log.debug("Loaded %dx%d image from %s", image.width(), image.height(), source)
    return image

  if parsed.scheme == "file":
    path = urllib.request.url2pathname(parsed.path)
  else:
    path = source
  if base_dir and not os.path.isabs(path):
    path = os.path.join(base_dir, path)

  image = QImage(path)
  if image.isNull():
    raise OSError("Cannot load image %s" % path)
  log.debug("Loaded %dx%d image from %s", image.width(), image.height(), path)
  return image


def save_qimage(image, path):
  """Save a QImage; the format follows the file extension. Returns True on success."""
  folder = os.path.dirname(os.path.abspath(path))
  try:
    os.makedirs(folder, exist_ok=True)
  except OSError as e:
    log.error("Cannot create folder %s: %s", folder, e)
    return False
  if not image.save(path):
    log.error("Failed to save image to %s", path)
    return False
  log.info("Saved %s", path)
  return True
