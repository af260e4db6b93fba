"""Command dispatch context: every front-end command, returning {ok, ...} results."""

import functools
import logging
import time

from applier import apply_tab_groups
from archive import DEFAULT_RETENTION, ArchiveManager, ArchiveStore, UndoSlot
from collector import collect_tabs, normalize_tabs
from errors import (
    ARCHIVE_NOT_FOUND,
    INVALID_PREVIEW_DRAFT,
    NO_PREVIEW_DRAFT,
    NO_SUPPORTED_TABS,
    SNAPSHOT_NOT_FOUND,
    TAB_CLOSE_FAILED,
    HostError,
    TabFocusError,
)
from host import HostTab, TabHost
from models import RevertHistoryEntry, RunSummary, Settings
from pipeline import build_groups_from_tabs
from preview import build_preview_draft, sanitize_preview_draft, summarize_preview
from snapshots import capture_snapshot, revert_to_snapshot
from storage import KeyValueStore, Storage

log = logging.getLogger(__name__)


def command(func):
    """Precondition failures become {"ok": False, "error": code}; nothing is thrown past here."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return {"ok": True, **func(*args, **kwargs)}
        except TabFocusError as e:
            log.info("%s failed: %s", func.__name__, e.code)
            return {"ok": False, "error": e.code}
    return wrapper


class TabFocusService:
    def __init__(self, kv: KeyValueStore, host: TabHost, clock=time.time,
                 archive_retention: int = DEFAULT_RETENTION):
        self.storage = Storage(kv)
        self.host = host
        self.clock = clock
        self.archives = ArchiveStore(kv)
        self.undo_slot = UndoSlot()
        self.archive_manager = ArchiveManager(host, self.archives, self.undo_slot,
                                              clock=clock, retention=archive_retention)

    # ── Settings ─────────────────────────────────────────────

    @command
    def get_settings(self) -> dict:
        return {"settings": self.storage.get_settings().model_dump()}

    @command
    def save_settings(self, settings: Settings) -> dict:
        self.storage.save_settings(settings)
        return {"settings": settings.model_dump()}

    # ── Preview ──────────────────────────────────────────────

    @command
    def generate_preview(self, raw_tabs: list[HostTab] | None = None) -> dict:
        settings = self.storage.get_settings()
        if raw_tabs is None:
            tabs = collect_tabs(self.host, settings.organize_scope, settings.include_full_url)
        else:
            tabs = normalize_tabs(raw_tabs, settings.include_full_url)
        if not tabs:
            raise TabFocusError(NO_SUPPORTED_TABS)

        log.info("Generating preview for %d tabs", len(tabs))
        result = build_groups_from_tabs(tabs, settings)
        draft = build_preview_draft(result, now=self.clock())
        self.storage.set_preview_draft(draft)
        self.storage.set_last_ai_meta(result["ai_meta"])
        return {"draft": draft.model_dump(), "summary": summarize_preview(draft)}

    @command
    def get_preview(self) -> dict:
        raw = self.storage.get_preview_draft()
        if raw is None:
            raise TabFocusError(NO_PREVIEW_DRAFT)
        draft = sanitize_preview_draft(raw)
        if draft is None:
            raise TabFocusError(INVALID_PREVIEW_DRAFT)
        return {"draft": draft.model_dump(), "summary": summarize_preview(draft)}

    @command
    def save_preview(self, raw_draft: dict) -> dict:
        draft = sanitize_preview_draft(raw_draft)
        if draft is None:
            raise TabFocusError(INVALID_PREVIEW_DRAFT)
        self.storage.set_preview_draft(draft)
        return {"draft": draft.model_dump(), "summary": summarize_preview(draft)}

    @command
    def discard_preview(self) -> dict:
        self.storage.clear_preview_draft()
        return {}

    @command
    def apply_preview(self, raw_draft: dict | None = None, allow_cross_window: bool | None = None) -> dict:
        if raw_draft is None:
            raw_draft = self.storage.get_preview_draft()
        if raw_draft is None:
            raise TabFocusError(NO_PREVIEW_DRAFT)
        draft = sanitize_preview_draft(raw_draft)
        if draft is None:
            raise TabFocusError(INVALID_PREVIEW_DRAFT)

        if allow_cross_window is None:
            allow_cross_window = self.storage.get_settings().allow_cross_window_grouping

        indices = [i for g in draft.groups for i in g.tab_indices]
        snapshot = capture_snapshot(self.host, draft.tabs, indices, now=self.clock())
        self.storage.append_revert_snapshot(snapshot)

        summary = apply_tab_groups(self.host, draft.tabs, draft.groups, allow_cross_window)
        self.storage.update_snapshot_summary(
            snapshot.snapshot_id,
            RunSummary(grouped_tabs=summary.grouped_tabs, groups_created=summary.groups_created),
        )
        self.storage.set_last_run_summary({
            **summary.model_dump(),
            "snapshot_id": snapshot.snapshot_id,
            "draft_id": draft.draft_id,
            "used_fallback": draft.used_fallback,
            "created_at": self.clock(),
        })
        self.storage.clear_preview_draft()
        return {"summary": summary.model_dump(), "snapshot_id": snapshot.snapshot_id}

    # ── Revert ───────────────────────────────────────────────

    @command
    def list_revert_history(self) -> dict:
        entries = [
            RevertHistoryEntry(
                snapshot_id=s.snapshot_id,
                created_at=s.created_at,
                grouped_tabs=s.summary.grouped_tabs,
                groups_created=s.summary.groups_created,
            ).model_dump()
            for s in self.storage.get_revert_history()
        ]
        return {"history": entries}

    @command
    def revert(self, snapshot_id: str) -> dict:
        snapshot = self.storage.find_revert_snapshot(snapshot_id)
        if snapshot is None:
            raise TabFocusError(SNAPSHOT_NOT_FOUND)
        return revert_to_snapshot(self.host, snapshot)

    # ── Tabs & archive ───────────────────────────────────────

    @command
    def close_tab(self, tab_id: int) -> dict:
        try:
            self.host.close_tab(tab_id)
        except HostError as e:
            log.warning("Could not close tab %s: %s", tab_id, e.code)
            raise TabFocusError(TAB_CLOSE_FAILED) from e
        return {"tab_id": tab_id}

    @command
    def archive_and_close(self, tabs: list[dict], reason: str = "manual",
                          draft_id: str | None = None, group_name: str | None = None) -> dict:
        return self.archive_manager.archive_and_close(tabs, reason, draft_id, group_name)

    @command
    def undo_last_archive(self, token_id: str | None) -> dict:
        return self.archive_manager.undo(token_id)

    @command
    def list_archives(self, limit: int = 20) -> dict:
        return {"archives": [e.model_dump() for e in self.archives.list_recent(limit)]}

    @command
    def get_archive(self, archive_id: str) -> dict:
        entry = self.archives.get(archive_id)
        if entry is None:
            raise TabFocusError(ARCHIVE_NOT_FOUND)
        return {"archive": entry.model_dump()}

    # ── Runs ─────────────────────────────────────────────────

    @command
    def get_last_run_summary(self) -> dict:
        return {"summary": self.storage.get_last_run_summary()}

    @command
    def get_last_ai_meta(self) -> dict:
        meta = self.storage.get_last_ai_meta()
        return {"ai_meta": meta.model_dump() if meta else None}
