"""Archive-and-close batches with a short-lived single-slot undo."""

import json
import logging
import sqlite3
import threading
import time
import uuid

from errors import (
    ARCHIVE_NOT_FOUND,
    NO_UNDO_TOKEN,
    UNDO_TOKEN_EXPIRED,
    UNDO_TOKEN_MISMATCH,
    HostError,
    TabFocusError,
)
from host import TabHost
from models import ArchiveEntry, ArchiveTab, UndoToken
from storage import KeyValueStore

log = logging.getLogger(__name__)

UNDO_TTL_SECONDS = 10
DEFAULT_RETENTION = 1000
MAX_ARCHIVE_TITLE_LEN = 220


def create_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def sanitize_archive_tab(tab: dict) -> ArchiveTab:
    def _int(value):
        return value if isinstance(value, int) and not isinstance(value, bool) else None

    title = tab.get("title")
    url = tab.get("url")
    domain = tab.get("domain")
    window_id = _int(tab.get("window_id"))
    tab_index = _int(tab.get("tab_index"))
    return ArchiveTab(
        chrome_tab_id=_int(tab.get("chrome_tab_id")),
        title=title[:MAX_ARCHIVE_TITLE_LEN] if isinstance(title, str) else "Untitled Tab",
        url=url if isinstance(url, str) and url else None,
        domain=domain if isinstance(domain, str) and domain else "unknown",
        window_id=window_id if window_id is not None else -1,
        tab_index=tab_index if tab_index is not None else 0,
    )


class ArchiveStore:
    """Archive entries in the sqlite `archives` table, ordered by created_at."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def save(self, entry: ArchiveEntry) -> None:
        with self.kv.get_db() as db:
            db.execute(
                "INSERT OR REPLACE INTO archives (archive_id, created_at, payload) VALUES (?, ?, ?)",
                (entry.archive_id, entry.created_at, entry.model_dump_json()),
            )

    def get(self, archive_id: str) -> ArchiveEntry | None:
        if not archive_id:
            return None
        with self.kv.get_db() as db:
            row = db.execute("SELECT payload FROM archives WHERE archive_id = ?", (archive_id,)).fetchone()
        return ArchiveEntry.model_validate(json.loads(row["payload"])) if row else None

    def list_recent(self, limit: int = 20) -> list[ArchiveEntry]:
        safe_limit = max(1, min(200, limit))
        with self.kv.get_db() as db:
            rows = db.execute(
                "SELECT payload FROM archives ORDER BY created_at DESC, rowid DESC LIMIT ?", (safe_limit,)
            ).fetchall()
        return [ArchiveEntry.model_validate(json.loads(r["payload"])) for r in rows]

    def prune(self, max_entries: int = DEFAULT_RETENTION) -> int:
        """Keep the newest max_entries, delete the rest. Returns the pruned count."""
        cap = max(1, max_entries)
        with self.kv.get_db() as db:
            cur = db.execute(
                """DELETE FROM archives WHERE archive_id IN (
                       SELECT archive_id FROM archives ORDER BY created_at DESC, rowid DESC LIMIT -1 OFFSET ?
                   )""",
                (cap,),
            )
            return cur.rowcount


class UndoSlot:
    """Holds at most one outstanding undo token; issuing supersedes the previous one."""

    def __init__(self):
        self._token: UndoToken | None = None
        self._lock = threading.Lock()

    def issue(self, archive_id: str, expires_at: float) -> UndoToken:
        token = UndoToken(token_id=create_id("undo"), archive_id=archive_id, expires_at=expires_at)
        with self._lock:
            self._token = token
        return token

    def peek(self) -> UndoToken | None:
        with self._lock:
            return self._token

    def take(self) -> UndoToken | None:
        """Remove and return the outstanding token in one step."""
        with self._lock:
            token, self._token = self._token, None
        return token


class ArchiveManager:
    def __init__(self, host: TabHost, store: ArchiveStore, slot: UndoSlot,
                 clock=time.time, retention: int = DEFAULT_RETENTION):
        self.host = host
        self.store = store
        self.slot = slot
        self.clock = clock
        self.retention = retention
        self._write_lock = threading.Lock()

    def archive_and_close(self, tabs: list[dict], reason: str = "manual",
                          draft_id: str | None = None, group_name: str | None = None) -> dict:
        archive_tabs = [sanitize_archive_tab(t) for t in tabs if isinstance(t, dict)]
        entry = ArchiveEntry(
            archive_id=create_id("archive"),
            created_at=self.clock(),
            reason=reason or "manual",
            tabs=archive_tabs,
            draft_id=draft_id,
            group_name=group_name,
        )

        with self._write_lock:
            # Durable before destructive.
            self.store.save(entry)

            closed = 0
            failed_tab_ids = []
            for tab in archive_tabs:
                if tab.chrome_tab_id is None:
                    continue
                try:
                    self.host.close_tab(tab.chrome_tab_id)
                    closed += 1
                except HostError as e:
                    log.warning("Could not close tab %s: %s", tab.chrome_tab_id, e.code)
                    failed_tab_ids.append(tab.chrome_tab_id)

            try:
                pruned = self.store.prune(self.retention)
                if pruned:
                    log.info("Pruned %d old archive entries", pruned)
            except sqlite3.Error as e:
                log.error("Archive pruning failed: %s", e)

        token = self.slot.issue(entry.archive_id, self.clock() + UNDO_TTL_SECONDS)
        log.info("Archived %d tabs as %s (%d closed, %d failed)",
                 len(archive_tabs), entry.archive_id, closed, len(failed_tab_ids))
        return {
            "archive_id": entry.archive_id,
            "closed_count": closed,
            "failed_tab_ids": failed_tab_ids,
            "undo_token": token.model_dump(),
        }

    def undo(self, token_id: str | None) -> dict:
        """Reopen the tabs of the last archived batch. The slot is cleared on every attempt."""
        token = self.slot.take()
        if token is None:
            raise TabFocusError(NO_UNDO_TOKEN)

        if token_id != token.token_id:
            raise TabFocusError(UNDO_TOKEN_MISMATCH)
        if self.clock() > token.expires_at:
            raise TabFocusError(UNDO_TOKEN_EXPIRED)

        entry = self.store.get(token.archive_id)
        if entry is None:
            raise TabFocusError(ARCHIVE_NOT_FOUND)

        restored = 0
        skipped = 0
        for tab in entry.tabs:
            if not tab.url:
                skipped += 1
                continue
            try:
                self.host.create_tab(
                    tab.url,
                    window_id=tab.window_id if tab.window_id >= 0 else None,
                    index=tab.tab_index,
                )
                restored += 1
                continue
            except HostError as e:
                log.info("Original placement failed for %s (%s); reopening in default window", tab.url, e.code)
            try:
                self.host.create_tab(tab.url)
                restored += 1
            except HostError as e:
                log.warning("Could not reopen %s: %s", tab.url, e.code)
                skipped += 1

        log.info("Undo of %s: %d restored, %d skipped", entry.archive_id, restored, skipped)
        return {"archive_id": entry.archive_id, "restored_count": restored, "skipped_count": skipped}
