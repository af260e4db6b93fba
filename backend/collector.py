"""Tab source: normalize raw host tab records into pipeline tabs."""

from urllib.parse import urlparse

from host import HostTab, TabHost
from models import Tab

MAX_TITLE_LEN = 180

BLOCKED_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "about:",
    "view-source:",
    "devtools://",
)


def is_supported_url(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    if url.startswith(BLOCKED_PREFIXES):
        return False
    return url.startswith(("http://", "https://"))


def domain_from_url(url: str) -> str:
    """Extract domain from URL, stripping a leading www. prefix."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return "unknown"
    if host.startswith("www."):
        host = host[4:]
    return host or "unknown"


def normalize_title(title: str | None) -> str:
    if not title or not isinstance(title, str) or not title.strip():
        return "Untitled Tab"
    return title.strip()[:MAX_TITLE_LEN].rstrip()


def to_tab(raw: HostTab, include_full_url: bool) -> Tab:
    group_id = raw.group_id if raw.group_id is not None and raw.group_id >= 0 else None
    return Tab(
        chrome_tab_id=raw.id,
        window_id=raw.window_id,
        tab_index=raw.index,
        title=normalize_title(raw.title),
        domain=domain_from_url(raw.url),
        url=raw.url if include_full_url else None,
        pinned=raw.pinned,
        prior_group_id=group_id,
    )


def normalize_tabs(raw_tabs: list[HostTab], include_full_url: bool) -> list[Tab]:
    return [
        to_tab(t, include_full_url)
        for t in raw_tabs
        if t.id is not None and is_supported_url(t.url)
    ]


def collect_tabs(host: TabHost, scope: str = "all", include_full_url: bool = False) -> list[Tab]:
    """Collect tabs across all windows (or only the focused one) from the host."""
    raw_tabs = host.query_open_tabs(current_window_only=scope == "current")
    return normalize_tabs(raw_tabs, include_full_url)
