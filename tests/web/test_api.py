import yaml
from fastapi.testclient import TestClient

from reelframe.catalog import load_catalog
from reelframe.ipc import IPCError
from reelframe.web import api
from reelframe.web.api import app


def _write_minimal_config(base_dir):
    state_dir = base_dir / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    payload = {
        "cache": {"directory": str(base_dir / "cache")},
        "runtime": {"timezone": "UTC", "storage_dir": str(state_dir)},
        "supervisor": {"ipc_socket": str(base_dir / "ipc.sock")},
    }
    with (base_dir / "config.yml").open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle)
    return base_dir


def test_catalog_summary(tmp_path):
    base_dir = _write_minimal_config(tmp_path)
    catalog = load_catalog(base_dir / "state" / "catalog.json")
    catalog.upsert_new_paths(["/remote/a.jpg", "/remote/b.mp4"])
    catalog.increment_times_shown(1)

    response = TestClient(app).get("/catalog", params={"config_dir": str(base_dir)})

    assert response.status_code == 200
    assert response.json() == {"total": 2, "cached": 1, "uncached": 1}


def test_corrupt_catalog_is_server_error(tmp_path):
    base_dir = _write_minimal_config(tmp_path)
    (base_dir / "state" / "catalog.json").write_text("{broken", encoding="utf-8")

    response = TestClient(app).get("/catalog", params={"config_dir": str(base_dir)})

    assert response.status_code == 500


def test_status_without_supervisor(tmp_path, monkeypatch):
    base_dir = _write_minimal_config(tmp_path)

    def _unreachable(socket_path, payload):
        raise IPCError("Supervisor IPC socket not found. Is 'reelframe serve' running?")

    monkeypatch.setattr(api, "send_ipc_command", _unreachable)

    response = TestClient(app).get("/status", params={"config_dir": str(base_dir)})

    assert response.status_code == 503
    assert "reelframe serve" in response.json()["detail"]


def test_toggle_forwards_supervisor_reply(tmp_path, monkeypatch):
    base_dir = _write_minimal_config(tmp_path)
    sent = []

    def _reply(socket_path, payload):
        sent.append((socket_path, payload))
        return {"status": "ok", "message": "Slideshow paused", "state": "paused"}

    monkeypatch.setattr(api, "send_ipc_command", _reply)

    response = TestClient(app).post("/toggle", params={"config_dir": str(base_dir)})

    assert response.status_code == 200
    assert response.json()["state"] == "paused"
    assert sent == [(base_dir / "ipc.sock", {"command": "toggle"})]


def test_next_reports_supervisor_error(tmp_path, monkeypatch):
    base_dir = _write_minimal_config(tmp_path)
    monkeypatch.setattr(
        api,
        "send_ipc_command",
        lambda socket_path, payload: {"status": "error", "message": "No cached media available"},
    )

    response = TestClient(app).post("/next", params={"config_dir": str(base_dir)})

    assert response.status_code == 409
    assert response.json()["detail"] == "No cached media available"


def test_invalid_config_dir(tmp_path):
    response = TestClient(app).get("/catalog", params={"config_dir": str(tmp_path / "nowhere")})

    assert response.status_code == 400
