"""sqlite-backed key-value persistence for settings, drafts and run history."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from models import AiRunMeta, PreviewDraft, RunSnapshot, RunSummary, Settings

log = logging.getLogger(__name__)

SETTINGS_PREFIX = "settings."
LAST_RUN_SUMMARY = "runs.lastSummary"
LAST_AI_META = "runs.lastAiMeta"
PREVIEW_DRAFT = "runs.previewDraft"
REVERT_HISTORY = "runs.revertHistory"

MAX_REVERT_HISTORY = 3

DEFAULT_SETTINGS = Settings()

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS archives (
    archive_id TEXT PRIMARY KEY,
    created_at REAL NOT NULL,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_archives_created_at ON archives (created_at);
"""


class KeyValueStore:
    """get/set/remove of JSON values. Each call is atomic; calls are not transactional together."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def get_db(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self):
        with self.get_db() as db:
            db.executescript(SCHEMA)

    def get(self, keys: list[str]) -> dict:
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        with self.get_db() as db:
            rows = db.execute(f"SELECT key, value FROM kv WHERE key IN ({placeholders})", keys).fetchall()
        return {r["key"]: json.loads(r["value"]) for r in rows}

    def set(self, values: dict) -> None:
        with self.get_db() as db:
            db.executemany(
                "INSERT INTO kv (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                [(k, json.dumps(v)) for k, v in values.items()],
            )

    def remove(self, key: str) -> None:
        with self.get_db() as db:
            db.execute("DELETE FROM kv WHERE key = ?", (key,))


class Storage:
    """Typed accessors over the key-value store."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._history_lock = threading.Lock()

    # ── Settings ─────────────────────────────────────────────

    def get_settings(self) -> Settings:
        fields = list(Settings.model_fields)
        values = self.kv.get([SETTINGS_PREFIX + f for f in fields])
        merged = DEFAULT_SETTINGS.model_dump()
        for field in fields:
            if SETTINGS_PREFIX + field in values:
                merged[field] = values[SETTINGS_PREFIX + field]
        return Settings.model_validate(merged)

    def save_settings(self, settings: Settings) -> None:
        self.kv.set({SETTINGS_PREFIX + k: v for k, v in settings.model_dump().items()})

    # ── Run summaries ────────────────────────────────────────

    def get_last_run_summary(self) -> dict | None:
        return self.kv.get([LAST_RUN_SUMMARY]).get(LAST_RUN_SUMMARY)

    def set_last_run_summary(self, summary: dict) -> None:
        self.kv.set({LAST_RUN_SUMMARY: summary})

    def get_last_ai_meta(self) -> AiRunMeta | None:
        value = self.kv.get([LAST_AI_META]).get(LAST_AI_META)
        return AiRunMeta.model_validate(value) if value else None

    def set_last_ai_meta(self, meta: AiRunMeta) -> None:
        self.kv.set({LAST_AI_META: meta.model_dump()})

    # ── Preview draft ────────────────────────────────────────

    def get_preview_draft(self) -> dict | None:
        """Raw stored draft; callers sanitize before use."""
        return self.kv.get([PREVIEW_DRAFT]).get(PREVIEW_DRAFT)

    def set_preview_draft(self, draft: PreviewDraft) -> None:
        self.kv.set({PREVIEW_DRAFT: draft.model_dump()})

    def clear_preview_draft(self) -> None:
        self.kv.remove(PREVIEW_DRAFT)

    # ── Revert history ───────────────────────────────────────

    def get_revert_history(self) -> list[RunSnapshot]:
        raw = self.kv.get([REVERT_HISTORY]).get(REVERT_HISTORY)
        if not isinstance(raw, list):
            return []
        history = []
        for entry in raw:
            try:
                history.append(RunSnapshot.model_validate(entry))
            except ValueError:
                log.warning("Dropping malformed snapshot from revert history")
        return history

    def append_revert_snapshot(self, snapshot: RunSnapshot) -> None:
        with self._history_lock:
            history = [snapshot] + self.get_revert_history()
            self.kv.set({REVERT_HISTORY: [s.model_dump() for s in history[:MAX_REVERT_HISTORY]]})

    def update_snapshot_summary(self, snapshot_id: str, summary: RunSummary) -> None:
        with self._history_lock:
            history = self.get_revert_history()
            for snapshot in history:
                if snapshot.snapshot_id == snapshot_id:
                    snapshot.summary = summary
            self.kv.set({REVERT_HISTORY: [s.model_dump() for s in history]})

    def find_revert_snapshot(self, snapshot_id: str) -> RunSnapshot | None:
        return next((s for s in self.get_revert_history() if s.snapshot_id == snapshot_id), None)
