"""Preview draft model: build, edit, sanitize and summarize grouping proposals."""

import logging
import time
import uuid

from pydantic import ValidationError

from models import PreviewDraft, PreviewGroup, Tab

log = logging.getLogger(__name__)

MAX_NAME_LEN = 40
MAX_RATIONALE_LEN = 160
MAX_SAMPLE_TITLES = 3


def new_draft_id() -> str:
    return f"draft_{uuid.uuid4().hex[:12]}"


def _sample_titles(indices: list[int], tabs: list[Tab]) -> list[str]:
    return [tabs[i].title for i in indices[:MAX_SAMPLE_TITLES] if tabs[i].title]


def build_preview_draft(result: dict, now: float | None = None) -> PreviewDraft:
    """Turn pipeline output ({tabs, groups, used_fallback, ...}) into a draft."""
    tabs = result["tabs"]
    groups = [
        PreviewGroup(
            id=f"group_{n + 1}",
            name=g.name[:MAX_NAME_LEN].strip(),
            tab_indices=list(g.tab_indices),
            confidence=g.confidence,
            rationale=g.rationale[:MAX_RATIONALE_LEN].strip() or None if g.rationale else None,
            sample_titles=_sample_titles(g.tab_indices, tabs),
        )
        for n, g in enumerate(result["groups"])
    ]
    draft = PreviewDraft(
        draft_id=new_draft_id(),
        created_at=now if now is not None else time.time(),
        tabs=tabs,
        groups=groups,
        excluded_tab_indices=[],
        used_fallback=result.get("used_fallback", False),
        enriched_context_used=result.get("enriched_context_used", False),
        hint=result.get("hint", ""),
        ai_error_code=result.get("ai_error_code"),
        ai_meta=result.get("ai_meta"),
    )
    return sanitize_preview_draft(draft)


def _valid_index(value, tab_count: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < tab_count


def sanitize_preview_draft(raw) -> PreviewDraft | None:
    """Re-validate a (possibly user-edited) draft.

    Returns None when there is no usable tab list; callers treat that as
    INVALID_PREVIEW_DRAFT rather than as an empty draft.
    """
    if raw is None:
        return None
    data = raw.model_dump() if isinstance(raw, PreviewDraft) else raw
    if not isinstance(data, dict):
        return None

    raw_tabs = data.get("tabs")
    if not isinstance(raw_tabs, list) or not raw_tabs:
        return None
    try:
        tabs = [Tab.model_validate(t) for t in raw_tabs]
    except ValidationError as e:
        log.warning("Rejecting preview draft with malformed tabs: %s", e.error_count())
        return None
    tab_count = len(tabs)

    used: set[int] = set()
    used_ids: set[str] = set()
    groups = []
    raw_groups = data.get("groups") if isinstance(data.get("groups"), list) else []
    for position, raw_group in enumerate(raw_groups):
        if not isinstance(raw_group, dict):
            continue
        indices = []
        for value in raw_group.get("tab_indices") or []:
            if _valid_index(value, tab_count) and value not in used:
                used.add(value)
                indices.append(value)
        if not indices:
            continue

        group_id = raw_group.get("id")
        if not isinstance(group_id, str) or not group_id.strip() or group_id in used_ids:
            group_id = f"group_{uuid.uuid4().hex[:8]}"
        used_ids.add(group_id)

        name = raw_group.get("name")
        name = name[:MAX_NAME_LEN].strip() if isinstance(name, str) else ""
        rationale = raw_group.get("rationale")
        rationale = rationale[:MAX_RATIONALE_LEN].strip() or None if isinstance(rationale, str) else None
        confidence = raw_group.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None
        else:
            confidence = min(1.0, max(0.0, float(confidence)))

        groups.append(PreviewGroup(
            id=group_id,
            name=name or f"Group {position + 1}",
            tab_indices=indices,
            confidence=confidence,
            rationale=rationale,
            sample_titles=_sample_titles(indices, tabs),
        ))

    excluded = []
    for value in data.get("excluded_tab_indices") or []:
        if _valid_index(value, tab_count) and value not in used:
            used.add(value)
            excluded.append(value)
    excluded.extend(i for i in range(tab_count) if i not in used)

    draft_id = data.get("draft_id")
    created_at = data.get("created_at")
    hint = data.get("hint")
    return PreviewDraft(
        draft_id=draft_id if isinstance(draft_id, str) and draft_id else new_draft_id(),
        created_at=created_at if isinstance(created_at, (int, float)) and not isinstance(created_at, bool) else time.time(),
        tabs=tabs,
        groups=groups,
        excluded_tab_indices=excluded,
        used_fallback=bool(data.get("used_fallback")),
        enriched_context_used=bool(data.get("enriched_context_used")),
        hint=hint if isinstance(hint, str) else "",
        ai_error_code=data.get("ai_error_code") if isinstance(data.get("ai_error_code"), str) else None,
        ai_meta=data.get("ai_meta") if isinstance(data.get("ai_meta"), dict) else None,
    )


def summarize_preview(draft: PreviewDraft) -> dict:
    grouped = sum(len(g.tab_indices) for g in draft.groups)
    return {
        "groups": len(draft.groups),
        "grouped": grouped,
        "skipped": len(draft.excluded_tab_indices),
    }


# ── Edits ────────────────────────────────────────────────────

def rename_group(draft: PreviewDraft, group_id: str, name: str) -> PreviewDraft:
    data = draft.model_dump()
    for group in data["groups"]:
        if group["id"] == group_id:
            group["name"] = name
    return sanitize_preview_draft(data)


def move_tab(draft: PreviewDraft, tab_index: int, target_group_id: str | None) -> PreviewDraft:
    """Move a tab into another group, or into the excluded list when target is None."""
    data = draft.model_dump()
    for group in data["groups"]:
        group["tab_indices"] = [i for i in group["tab_indices"] if i != tab_index]
    data["excluded_tab_indices"] = [i for i in data["excluded_tab_indices"] if i != tab_index]

    target = next((g for g in data["groups"] if g["id"] == target_group_id), None)
    if target is None:
        data["excluded_tab_indices"].append(tab_index)
    else:
        target["tab_indices"].append(tab_index)
    return sanitize_preview_draft(data)


def delete_group(draft: PreviewDraft, group_id: str) -> PreviewDraft:
    data = draft.model_dump()
    data["groups"] = [g for g in data["groups"] if g["id"] != group_id]
    return sanitize_preview_draft(data)
