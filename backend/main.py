"""TabFocus FastAPI Backend."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from host import BridgeTabHost, HostTab
from models import Settings
from service import TabFocusService
from storage import KeyValueStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
log = logging.getLogger(__name__)

# Config
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = Path(os.environ.get("TABFOCUS_CONFIG", PROJECT_ROOT / "config" / "config.json"))
config = json.loads(CONFIG_PATH.read_text())
DB_PATH = os.environ.get("TABFOCUS_DB_PATH") or str(PROJECT_ROOT / config["db_path"])

app = FastAPI(title="TabFocus", version="1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

service = TabFocusService(
    KeyValueStore(DB_PATH),
    BridgeTabHost(config["host_bridge_url"], timeout=config.get("host_timeout", 10)),
    archive_retention=config.get("archive_retention", 1000),
)


# ── Models ───────────────────────────────────────────────────

class GeneratePreviewRequest(BaseModel):
    tabs: Optional[list[HostTab]] = None  # omitted: query the browser

class ApplyPreviewRequest(BaseModel):
    draft: Optional[dict] = None  # edited draft; omitted: the stored one
    allow_cross_window_grouping: Optional[bool] = None

class ArchiveRequest(BaseModel):
    tabs: list[dict]
    reason: str = "manual"
    draft_id: Optional[str] = None
    group_name: Optional[str] = None

class UndoRequest(BaseModel):
    token_id: Optional[str] = None


# ── Settings ─────────────────────────────────────────────────

@app.get("/api/settings")
def get_settings():
    return service.get_settings()


@app.put("/api/settings")
def save_settings(settings: Settings):
    return service.save_settings(settings)


# ── Preview ──────────────────────────────────────────────────

@app.post("/api/preview")
def generate_preview(req: GeneratePreviewRequest):
    """Collect tabs, group them (AI or heuristic) and store the draft."""
    return service.generate_preview(req.tabs)


@app.get("/api/preview")
def get_preview():
    return service.get_preview()


@app.put("/api/preview")
def save_preview(draft: dict):
    """Store a user-edited draft after re-validating it."""
    return service.save_preview(draft)


@app.delete("/api/preview")
def discard_preview():
    return service.discard_preview()


@app.post("/api/preview/apply")
def apply_preview(req: ApplyPreviewRequest):
    return service.apply_preview(req.draft, req.allow_cross_window_grouping)


# ── Revert ───────────────────────────────────────────────────

@app.get("/api/revert/history")
def revert_history():
    return service.list_revert_history()


@app.post("/api/revert/{snapshot_id}")
def revert(snapshot_id: str):
    return service.revert(snapshot_id)


# ── Tabs & Archive ───────────────────────────────────────────

@app.post("/api/tabs/{tab_id}/close")
def close_tab(tab_id: int):
    return service.close_tab(tab_id)


@app.post("/api/archive")
def archive_and_close(req: ArchiveRequest):
    """Persist the batch, close its tabs, hand back a short-lived undo token."""
    return service.archive_and_close(req.tabs, req.reason, req.draft_id, req.group_name)


@app.post("/api/archive/undo")
def undo_archive(req: UndoRequest):
    return service.undo_last_archive(req.token_id)


@app.get("/api/archives")
def list_archives(limit: int = Query(20)):
    return service.list_archives(limit)


@app.get("/api/archives/{archive_id}")
def get_archive(archive_id: str):
    return service.get_archive(archive_id)


# ── Runs ─────────────────────────────────────────────────────

@app.get("/api/runs/last")
def last_run():
    return service.get_last_run_summary()


@app.get("/api/runs/last-ai")
def last_ai_meta():
    return service.get_last_ai_meta()


if __name__ == "__main__":
    log.info("Starting TabFocus backend on port %d", config["backend_port"])
    uvicorn.run(app, host=config.get("backend_host", "127.0.0.1"), port=config["backend_port"])
