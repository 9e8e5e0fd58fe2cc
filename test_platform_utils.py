"""Tests for platform utilities."""

from unittest.mock import patch

import httpx
import pytest
from PySide6.QtGui import QImage, QColor
from PySide6.QtWidgets import QApplication

app = QApplication.instance() or QApplication([])

import platform_utils
from platform_utils import default_project_path, load_qimage, save_qimage


def make_png(tmp_path, name="plan.png", w=40, h=20):
  img = QImage(w, h, QImage.Format.Format_ARGB32)
  img.fill(QColor(0, 0, 255))
  path = tmp_path / name
  assert img.save(str(path))
  return path


def http_response(url, status=200, content=b""):
  return httpx.Response(status, content=content, request=httpx.Request("GET", url))


class TestDefaultProjectPath:
  def test_returns_json_path(self):
    path = default_project_path()
    assert isinstance(path, str)
    assert path.endswith("venuemap.json")

  def test_linux_honours_xdg_data_home(self, monkeypatch):
    monkeypatch.setattr(platform_utils, "SYSTEM", "Linux")
    monkeypatch.setenv("XDG_DATA_HOME", "/data/home")
    assert default_project_path().startswith("/data/home")


class TestLoadQImage:
  def test_loads_absolute_path(self, tmp_path):
    path = make_png(tmp_path)
    img = load_qimage(str(path))
    assert (img.width(), img.height()) == (40, 20)

  def test_relative_path_resolves_against_base_dir(self, tmp_path):
    make_png(tmp_path, "floor.png")
    img = load_qimage("floor.png", base_dir=str(tmp_path))
    assert not img.isNull()

  def test_file_url(self, tmp_path):
    path = make_png(tmp_path)
    img = load_qimage(path.as_uri())
    assert img.width() == 40

  def test_missing_file_raises(self, tmp_path):
    with pytest.raises(OSError):
      load_qimage(str(tmp_path / "nope.png"))

  def test_empty_source_raises(self):
    with pytest.raises(OSError):
      load_qimage("")

  def test_http_download_decoded(self, tmp_path):
    url = "https://cdn.example.com/maps/hall-a.png"
    data = make_png(tmp_path).read_bytes()
    with patch("platform_utils.httpx.get", return_value=http_response(url, content=data)) as get:
      img = load_qimage(url)
    get.assert_called_once_with(url, timeout=platform_utils.HTTP_TIMEOUT_SECONDS,
                                follow_redirects=True)
    assert (img.width(), img.height()) == (40, 20)

  def test_http_non_image_raises(self):
    url = "https://cdn.example.com/missing.png"
    resp = http_response(url, content=b"<html>not found</html>")
    with patch("platform_utils.httpx.get", return_value=resp):
      with pytest.raises(OSError, match="not an image"):
        load_qimage(url)

  def test_http_error_status_raises_oserror(self):
    url = "https://cdn.example.com/gone.png"
    with patch("platform_utils.httpx.get", return_value=http_response(url, status=404)):
      with pytest.raises(OSError, match="Cannot download"):
        load_qimage(url)

  def test_http_connection_failure_raises_oserror(self):
    url = "http://unreachable.invalid/plan.png"
    err = httpx.ConnectError("connection refused", request=httpx.Request("GET", url))
    with patch("platform_utils.httpx.get", side_effect=err):
      with pytest.raises(OSError, match="Cannot download"):
        load_qimage(url)


class TestSaveQImage:
  def test_saves_png_and_creates_folder(self, tmp_path):
    img = QImage(10, 10, QImage.Format.Format_ARGB32)
    img.fill(QColor(255, 0, 0))
    out = tmp_path / "exports" / "map.png"
    assert save_qimage(img, str(out)) is True
    assert out.exists()

  def test_returns_false_when_write_fails(self, tmp_path):
    # A null image cannot be encoded
    assert save_qimage(QImage(), str(tmp_path / "empty.png")) is False
