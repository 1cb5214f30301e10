"""Minimal FastAPI interface for controlling the Reelframe supervisor."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from .. import __version__
from ..app_context import AppContext, determine_paths, load_context
from ..catalog import CatalogError, load_catalog
from ..config import ConfigError
from ..ipc import IPCError, send_ipc_command

app = FastAPI(title="Reelframe API", version=__version__)


class CommandResponse(BaseModel):
    status: str
    message: Optional[str] = None
    state: Optional[str] = None


class CatalogSummary(BaseModel):
    total: int
    cached: int
    uncached: int


def _load_app_context(config_dir: Optional[str]) -> AppContext:
    try:
        resolved = Path(config_dir).expanduser() if config_dir else None
        return load_context(determine_paths(resolved))
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _ipc(context: AppContext, command: str) -> Dict[str, Any]:
    socket_path = Path(context.config.supervisor.ipc_socket).expanduser()
    try:
        response = send_ipc_command(socket_path, {"command": command})
    except IPCError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if response.get("status") != "ok":
        raise HTTPException(status_code=409, detail=response.get("message") or "Supervisor error")
    return response


@app.get("/status")
def status(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    response = _ipc(context, "status")
    return {
        "presentation": response.get("presentation"),
        "catalog": response.get("catalog"),
    }


@app.post("/next", response_model=CommandResponse)
def next_media(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    response = _ipc(context, "next")
    return CommandResponse(status="ok", message=response.get("message"))


@app.post("/toggle", response_model=CommandResponse)
def toggle(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    response = _ipc(context, "toggle")
    return CommandResponse(status="ok", message=response.get("message"), state=response.get("state"))


@app.get("/catalog", response_model=CatalogSummary)
def catalog_summary(config_dir: Optional[str] = Query(default=None)):
    context = _load_app_context(config_dir)
    try:
        catalog = load_catalog(context.config.runtime.catalog_path)
    except CatalogError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return CatalogSummary(**catalog.summary())
