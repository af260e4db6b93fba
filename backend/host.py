"""Browser tab/group mutation surface.

The extension exposes a small local bridge; BridgeTabHost talks to it over
HTTP. Every call may fail individually and raises HostError when it does.
"""

import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from errors import HOST_UNAVAILABLE, HostError

log = logging.getLogger(__name__)


class HostTab(BaseModel):
    id: Optional[int] = None
    window_id: int
    index: int = 0
    title: Optional[str] = None
    url: Optional[str] = None
    pinned: bool = False
    group_id: Optional[int] = None  # -1 or None when ungrouped


class HostGroup(BaseModel):
    id: int
    title: str = ""
    color: Optional[str] = None


class TabHost:
    """Contract consumed by the apply, revert and archive flows."""

    def query_open_tabs(self, current_window_only: bool = False) -> list[HostTab]:
        raise NotImplementedError

    def group(self, tab_ids: list[int]) -> int:
        raise NotImplementedError

    def update_group(self, group_id: int, title: str, color: str) -> None:
        raise NotImplementedError

    def get_group(self, group_id: int) -> HostGroup | None:
        raise NotImplementedError

    def ungroup(self, tab_ids: list[int]) -> None:
        raise NotImplementedError

    def close_tab(self, tab_id: int) -> None:
        raise NotImplementedError

    def create_tab(self, url: str, window_id: int | None = None, index: int | None = None) -> int:
        raise NotImplementedError


class BridgeTabHost(TabHost):
    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        try:
            resp = httpx.request(method, f"{self.base_url}{path}", json=body, timeout=self.timeout)
        except httpx.HTTPError as e:
            log.error("Tab host %s %s failed: %s", method, path, e)
            raise HostError(HOST_UNAVAILABLE, str(e)) from e
        if not resp.is_success:
            log.warning("Tab host %s %s returned %d: %s", method, path, resp.status_code, resp.text[:200])
            raise HostError(f"HOST_HTTP_{resp.status_code}", resp.text[:200])
        if not resp.content:
            return {}
        try:
            data = resp.json()
        except ValueError as e:
            log.error("Tab host %s %s returned a non-JSON body: %s", method, path, resp.text[:200])
            raise HostError(HOST_UNAVAILABLE, "malformed bridge reply") from e
        if not isinstance(data, dict):
            log.error("Tab host %s %s returned %s instead of an object", method, path, type(data).__name__)
            raise HostError(HOST_UNAVAILABLE, "malformed bridge reply")
        return data

    def _field(self, data: dict, key: str, path: str) -> int:
        try:
            return int(data[key])
        except (KeyError, TypeError, ValueError) as e:
            log.error("Tab host reply for %s has no usable %r: %s", path, key, data)
            raise HostError(HOST_UNAVAILABLE, f"bridge reply missing {key}") from e

    def query_open_tabs(self, current_window_only: bool = False) -> list[HostTab]:
        path = "/tabs?scope=current" if current_window_only else "/tabs"
        data = self._call("GET", path)
        try:
            return [HostTab.model_validate(t) for t in data.get("tabs", [])]
        except (TypeError, ValidationError) as e:
            log.error("Tab host returned malformed tabs: %s", e)
            raise HostError(HOST_UNAVAILABLE, "malformed tab list") from e

    def group(self, tab_ids: list[int]) -> int:
        return self._field(self._call("POST", "/groups", {"tab_ids": tab_ids}), "group_id", "/groups")

    def update_group(self, group_id: int, title: str, color: str) -> None:
        self._call("PATCH", f"/groups/{group_id}", {"title": title, "color": color})

    def get_group(self, group_id: int) -> HostGroup | None:
        try:
            data = self._call("GET", f"/groups/{group_id}")
        except HostError as e:
            if e.code == "HOST_HTTP_404":
                return None
            raise
        try:
            return HostGroup.model_validate(data)
        except ValidationError as e:
            raise HostError(HOST_UNAVAILABLE, "malformed group") from e

    def ungroup(self, tab_ids: list[int]) -> None:
        self._call("POST", "/tabs/ungroup", {"tab_ids": tab_ids})

    def close_tab(self, tab_id: int) -> None:
        self._call("DELETE", f"/tabs/{tab_id}")

    def create_tab(self, url: str, window_id: int | None = None, index: int | None = None) -> int:
        body = {"url": url, "window_id": window_id, "index": index}
        tab_id = self._call("POST", "/tabs", body).get("tab_id")
        # A 2xx means the tab exists even when the reply omits its id.
        return tab_id if isinstance(tab_id, int) else -1
