"""Turns an accepted preview into real browser tab groups."""

import logging

from errors import HostError
from host import TabHost
from models import ApplySummary, PreviewGroup, Tab

log = logging.getLogger(__name__)

GROUP_COLORS = ["orange", "blue", "green", "yellow", "purple", "pink", "cyan", "grey", "red"]
MAX_TITLE_LEN = 40


def color_for_group(created: int) -> str:
    return GROUP_COLORS[created % len(GROUP_COLORS)]


def claim_indices(tab_indices: list[int], tab_count: int, claimed: set[int]) -> list[int]:
    """First group wins a contested tab."""
    unique = []
    for index in tab_indices:
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        if index < 0 or index >= tab_count or index in claimed:
            continue
        claimed.add(index)
        unique.append(index)
    return unique


def partition_by_window(indices: list[int], tabs: list[Tab]) -> list[list[int]]:
    partitions: dict[int, list[int]] = {}
    for index in indices:
        partitions.setdefault(tabs[index].window_id, []).append(index)
    return list(partitions.values())


def apply_tab_groups(
    host: TabHost,
    tabs: list[Tab],
    groups: list[PreviewGroup],
    allow_cross_window: bool = False,
) -> ApplySummary:
    if not tabs:
        return ApplySummary(grouped_tabs=0, groups_created=0, skipped_tabs=0)

    claimed: set[int] = set()
    grouped = 0
    groups_created = 0

    for group in groups:
        indices = claim_indices(group.tab_indices, len(tabs), claimed)
        indices = [i for i in indices if tabs[i].chrome_tab_id is not None]
        if not indices:
            continue

        partitions = [indices] if allow_cross_window else partition_by_window(indices, tabs)
        for partition in partitions:
            tab_ids = [tabs[i].chrome_tab_id for i in partition]
            try:
                group_id = host.group(tab_ids)
            except HostError as e:
                log.warning("Could not group %d tabs for %r: %s", len(tab_ids), group.name, e.code)
                continue

            color = color_for_group(groups_created)
            try:
                host.update_group(group_id, group.name[:MAX_TITLE_LEN], color)
            except HostError as e:
                log.warning("Could not title group %s (%r): %s", group_id, group.name, e.code)

            grouped += len(partition)
            groups_created += 1

    log.info("Applied %d groups covering %d of %d tabs", groups_created, grouped, len(tabs))
    return ApplySummary(
        grouped_tabs=grouped,
        groups_created=groups_created,
        skipped_tabs=len(tabs) - grouped,
    )
