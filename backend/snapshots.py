"""Captures the grouping state an apply is about to overwrite, and restores it."""

import logging
import time
import uuid

from errors import NO_OPEN_TABS_FROM_SNAPSHOT, HostError, TabFocusError
from host import TabHost
from models import RunSnapshot, RunSnapshotGroup, RunSnapshotTab, Tab

log = logging.getLogger(__name__)

MAX_TITLE_LEN = 40
DEFAULT_COLOR = "grey"


def _live_group_id(value: int | None) -> int | None:
    return value if value is not None and value >= 0 else None


def capture_snapshot(host: TabHost, tabs: list[Tab], tab_indices: list[int], now: float | None = None) -> RunSnapshot:
    """Record prior group membership for every tab about to be grouped."""
    live = {t.id: t for t in host.query_open_tabs() if t.id is not None}

    snapshot_tabs: list[RunSnapshotTab] = []
    prior_groups: dict[int, RunSnapshotGroup] = {}
    seen: set[int] = set()

    for index in tab_indices:
        tab_id = tabs[index].chrome_tab_id
        if tab_id is None or tab_id in seen:
            continue
        seen.add(tab_id)

        record = live.get(tab_id)
        prior_group_id = _live_group_id(record.group_id) if record else None
        snapshot_tabs.append(RunSnapshotTab(chrome_tab_id=tab_id, prior_group_id=prior_group_id))
        if prior_group_id is None:
            continue

        bucket = prior_groups.get(prior_group_id)
        if bucket is None:
            title, color = "", None
            try:
                info = host.get_group(prior_group_id)
            except HostError as e:
                log.warning("Could not read group %s for snapshot: %s", prior_group_id, e.code)
                info = None
            if info is not None:
                title, color = info.title, info.color
            bucket = RunSnapshotGroup(old_group_id=prior_group_id, title=title, color=color)
            prior_groups[prior_group_id] = bucket
        bucket.tab_ids.append(tab_id)

    return RunSnapshot(
        snapshot_id=f"snap_{uuid.uuid4().hex[:12]}",
        created_at=now if now is not None else time.time(),
        tabs=snapshot_tabs,
        prior_groups=list(prior_groups.values()),
    )


def revert_to_snapshot(host: TabHost, snapshot: RunSnapshot) -> dict:
    """Ungroup what an apply created and rebuild the prior groups. Never closes tabs."""
    live = {t.id: t for t in host.query_open_tabs() if t.id is not None}
    open_tabs = [t for t in snapshot.tabs if t.chrome_tab_id in live]
    if not open_tabs:
        raise TabFocusError(NO_OPEN_TABS_FROM_SNAPSHOT)

    ungroup_failed: set[int] = set()
    for tab in open_tabs:
        if _live_group_id(live[tab.chrome_tab_id].group_id) is None:
            continue
        try:
            host.ungroup([tab.chrome_tab_id])
        except HostError as e:
            log.warning("Could not ungroup tab %s: %s", tab.chrome_tab_id, e.code)
            ungroup_failed.add(tab.chrome_tab_id)

    restored = sum(
        1 for t in open_tabs
        if t.prior_group_id is None and t.chrome_tab_id not in ungroup_failed
    )
    groups_restored = 0
    for prior in snapshot.prior_groups:
        tab_ids = [tid for tid in prior.tab_ids if tid in live]
        if not tab_ids:
            continue
        try:
            group_id = host.group(tab_ids)
        except HostError as e:
            log.warning("Could not recreate group %r: %s", prior.title, e.code)
            continue
        try:
            host.update_group(group_id, (prior.title or "")[:MAX_TITLE_LEN], prior.color or DEFAULT_COLOR)
        except HostError as e:
            log.warning("Could not restore title/color of group %r: %s", prior.title, e.code)
        restored += len(tab_ids)
        groups_restored += 1

    log.info("Reverted snapshot %s: %d tabs restored, %d groups", snapshot.snapshot_id, restored, groups_restored)
    return {
        "snapshot_id": snapshot.snapshot_id,
        "restored_tabs": restored,
        "groups_restored": groups_restored,
        "skipped_tabs": len(snapshot.tabs) - restored,
    }
