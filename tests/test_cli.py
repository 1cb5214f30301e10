from typer.testing import CliRunner

from reelframe.app_context import CONFIG_DIR_ENV
from reelframe.catalog import load_catalog
from reelframe.cli import app
from reelframe.config import ConfigPaths, load_config

runner = CliRunner()


def _init(tmp_path, monkeypatch):
    base_dir = tmp_path / "frame"
    monkeypatch.setenv(CONFIG_DIR_ENV, str(base_dir))
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    return ConfigPaths.from_base_dir(base_dir)


def _point_library_at(paths, photos):
    text = paths.config_file.read_text(encoding="utf-8")
    paths.config_file.write_text(text.replace("photo_root: null", f"photo_root: {photos}"), encoding="utf-8")


def test_init_writes_starter_config(tmp_path, monkeypatch):
    paths = _init(tmp_path, monkeypatch)

    assert paths.config_file.exists()
    assert load_config(paths.config_file).cache.directory == paths.cache_dir

    again = runner.invoke(app, ["init"])
    assert "already exists" in again.output


def test_offline_scan_then_catalog_listing(tmp_path, monkeypatch):
    paths = _init(tmp_path, monkeypatch)
    photos = tmp_path / "photos"
    photos.mkdir()
    (photos / "a.jpg").write_bytes(b"x")
    (photos / "b.png").write_bytes(b"x")
    _point_library_at(paths, photos)

    scanned = runner.invoke(app, ["scan", "--offline"])

    assert scanned.exit_code == 0, scanned.output
    assert "Added 2 new items" in scanned.output
    assert len(load_catalog(paths.state_dir / "catalog.json")) == 2

    listed = runner.invoke(app, ["catalog"])
    assert listed.exit_code == 0
    assert "2 not cached" in listed.output


def test_reconcile_removes_stray_cache_files(tmp_path, monkeypatch):
    paths = _init(tmp_path, monkeypatch)
    (paths.cache_dir / "17.jpg").write_bytes(b"orphan")

    result = runner.invoke(app, ["reconcile"])

    assert result.exit_code == 0, result.output
    assert "Removed 1 files" in result.output
    assert not (paths.cache_dir / "17.jpg").exists()


def test_status_without_supervisor_fails(tmp_path, monkeypatch):
    _init(tmp_path, monkeypatch)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
