"""Pydantic models for TabFocus."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PageContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: Optional[str] = None
    headings: Optional[list[str]] = None
    snippet: Optional[str] = None
    site_hints: Optional[list[str]] = None


class Tab(BaseModel):
    """Snapshot of one open tab at collection time. Never mutated in place."""

    model_config = ConfigDict(frozen=True)

    chrome_tab_id: Optional[int] = None
    window_id: int
    tab_index: int = 0
    title: str
    domain: str
    url: Optional[str] = None
    pinned: bool = False
    prior_group_id: Optional[int] = None
    page_context: Optional[PageContext] = None


class GroupSuggestion(BaseModel):
    name: str
    tab_indices: list[int]
    confidence: Optional[float] = None
    rationale: Optional[str] = None


class PreviewGroup(BaseModel):
    id: str
    name: str
    tab_indices: list[int]
    confidence: Optional[float] = None
    rationale: Optional[str] = None
    sample_titles: list[str] = Field(default_factory=list)


class AiRunMeta(BaseModel):
    primary_model: str
    fallback_model: str
    used_fallback_model: bool = False
    ai_error_code: Optional[str] = None


class PreviewDraft(BaseModel):
    draft_id: str
    created_at: float
    tabs: list[Tab]
    groups: list[PreviewGroup]
    excluded_tab_indices: list[int] = Field(default_factory=list)
    used_fallback: bool = False
    enriched_context_used: bool = False
    hint: str = ""
    ai_error_code: Optional[str] = None
    ai_meta: Optional[AiRunMeta] = None


class ApplySummary(BaseModel):
    grouped_tabs: int
    groups_created: int
    skipped_tabs: int


class RunSnapshotTab(BaseModel):
    chrome_tab_id: int
    prior_group_id: Optional[int] = None


class RunSnapshotGroup(BaseModel):
    old_group_id: Optional[int] = None
    title: str = ""
    color: Optional[str] = None
    tab_ids: list[int] = Field(default_factory=list)


class RunSummary(BaseModel):
    grouped_tabs: int = 0
    groups_created: int = 0


class RunSnapshot(BaseModel):
    snapshot_id: str
    created_at: float
    tabs: list[RunSnapshotTab]
    prior_groups: list[RunSnapshotGroup]
    summary: RunSummary = Field(default_factory=RunSummary)


class RevertHistoryEntry(BaseModel):
    snapshot_id: str
    created_at: float
    grouped_tabs: int
    groups_created: int


class ArchiveTab(BaseModel):
    chrome_tab_id: Optional[int] = None
    title: str = "Untitled Tab"
    url: Optional[str] = None
    domain: str = "unknown"
    window_id: int = -1
    tab_index: int = 0


class ArchiveEntry(BaseModel):
    archive_id: str
    created_at: float
    reason: str = "manual"
    tabs: list[ArchiveTab]
    draft_id: Optional[str] = None
    group_name: Optional[str] = None


class UndoToken(BaseModel):
    token_id: str
    archive_id: str
    expires_at: float


class Settings(BaseModel):
    openai_api_key: str = ""
    model: str = "gpt-4.1"
    fallback_model: str = "gpt-4o-mini"
    include_full_url: bool = True
    include_scraped_context: bool = True
    organize_scope: str = "all"  # all | current
    allow_cross_window_grouping: bool = False
