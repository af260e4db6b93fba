"""Shared fixtures for TabFocus tests."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add backend to path so we can import modules
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

# Keep `import main` away from the real database
os.environ.setdefault("TABFOCUS_DB_PATH", str(Path(tempfile.mkdtemp()) / "tabfocus-test.db"))

from errors import HostError  # noqa: E402
from host import HostGroup, HostTab, TabHost  # noqa: E402
from models import Tab  # noqa: E402
from service import TabFocusService  # noqa: E402
from storage import KeyValueStore  # noqa: E402


class FakeTabHost(TabHost):
    """In-memory browser: tabs, groups and injectable per-call failures."""

    def __init__(self):
        self.tabs: dict[int, HostTab] = {}
        self.groups: dict[int, HostGroup] = {}
        self._next_group_id = 100
        self._next_tab_id = 1000
        self.fail_close: set[int] = set()
        self.fail_group = False
        self.fail_placement = False
        self.calls: list[tuple] = []

    def add_tab(self, tab_id, url, title="", window_id=1, index=None, group_id=None, pinned=False):
        if index is None:
            index = len([t for t in self.tabs.values() if t.window_id == window_id])
        self.tabs[tab_id] = HostTab(id=tab_id, window_id=window_id, index=index, title=title,
                                    url=url, pinned=pinned, group_id=group_id)
        return self.tabs[tab_id]

    def add_group(self, group_id, title, color, tab_ids):
        self.groups[group_id] = HostGroup(id=group_id, title=title, color=color)
        for tid in tab_ids:
            self.tabs[tid] = self.tabs[tid].model_copy(update={"group_id": group_id})

    def membership(self) -> dict[int, int | None]:
        return {tid: t.group_id for tid, t in self.tabs.items()}

    def query_open_tabs(self, current_window_only=False):
        return list(self.tabs.values())

    def group(self, tab_ids):
        self.calls.append(("group", list(tab_ids)))
        if self.fail_group:
            raise HostError("HOST_HTTP_500")
        group_id = self._next_group_id
        self._next_group_id += 1
        self.groups[group_id] = HostGroup(id=group_id)
        for tid in tab_ids:
            self.tabs[tid] = self.tabs[tid].model_copy(update={"group_id": group_id})
        return group_id

    def update_group(self, group_id, title, color):
        self.calls.append(("update_group", group_id, title, color))
        self.groups[group_id] = HostGroup(id=group_id, title=title, color=color)

    def get_group(self, group_id):
        return self.groups.get(group_id)

    def ungroup(self, tab_ids):
        self.calls.append(("ungroup", list(tab_ids)))
        for tid in tab_ids:
            self.tabs[tid] = self.tabs[tid].model_copy(update={"group_id": None})

    def close_tab(self, tab_id):
        self.calls.append(("close", tab_id))
        if tab_id in self.fail_close or tab_id not in self.tabs:
            raise HostError("TAB_CLOSE_FAILED")
        del self.tabs[tab_id]

    def create_tab(self, url, window_id=None, index=None):
        self.calls.append(("create", url, window_id, index))
        if self.fail_placement and window_id is not None:
            raise HostError("HOST_HTTP_400")
        tab_id = self._next_tab_id
        self._next_tab_id += 1
        self.add_tab(tab_id, url, window_id=window_id if window_id is not None else 1,
                     index=index)
        return tab_id


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_tab(title, domain="example.com", window_id=1, tab_id=None, url=None, **extra):
    return Tab(chrome_tab_id=tab_id, window_id=window_id, title=title, domain=domain,
               url=url, **extra)


@pytest.fixture
def host():
    return FakeTabHost()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(tmp_path):
    return KeyValueStore(str(tmp_path / "test.db"))


@pytest.fixture
def service(kv, host, clock):
    return TabFocusService(kv, host, clock=clock)


@pytest.fixture
def app_client(service):
    """FastAPI TestClient wired to an isolated service."""
    import main
    main.service = service

    from fastapi.testclient import TestClient
    yield TestClient(main.app), service
