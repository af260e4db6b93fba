"""Tests for service.py: end-to-end command flows against the fake host."""

from unittest.mock import patch

from models import Settings

TITLES = [
    ("https://docs.python.org/3/library/asyncio.html", "Python asyncio event loop"),
    ("https://realpython.com/async-io-python", "Python asyncio walkthrough"),
    ("https://food.com/carbonara", "Pasta carbonara recipe"),
    ("https://cooking.nyt.com/carbonara", "Pasta carbonara classic"),
    ("chrome://settings", "Settings"),
]


def _populate(host):
    for n, (url, title) in enumerate(TITLES):
        host.add_tab(n + 1, url, title=title)


class TestCommandEnvelope:
    def test_errors_become_codes(self, service):
        assert service.get_preview() == {"ok": False, "error": "NO_PREVIEW_DRAFT"}
        assert service.revert("snap_missing") == {"ok": False, "error": "SNAPSHOT_NOT_FOUND"}
        assert service.undo_last_archive("undo_x") == {"ok": False, "error": "NO_UNDO_TOKEN"}
        assert service.get_archive("archive_x") == {"ok": False, "error": "ARCHIVE_NOT_FOUND"}
        assert service.save_preview({"groups": []}) == {"ok": False, "error": "INVALID_PREVIEW_DRAFT"}

    def test_no_supported_tabs(self, service, host):
        host.add_tab(1, "chrome://extensions")
        assert service.generate_preview() == {"ok": False, "error": "NO_SUPPORTED_TABS"}

    def test_close_tab(self, service, host):
        host.add_tab(1, "https://a.com")
        assert service.close_tab(1) == {"ok": True, "tab_id": 1}
        assert service.close_tab(1) == {"ok": False, "error": "TAB_CLOSE_FAILED"}


class TestSettings:
    def test_save_and_load(self, service):
        saved = service.save_settings(Settings(openai_api_key="sk-x", allow_cross_window_grouping=True))
        assert saved["ok"] is True
        loaded = service.get_settings()["settings"]
        assert loaded["openai_api_key"] == "sk-x"
        assert loaded["allow_cross_window_grouping"] is True


class TestPreviewFlow:
    def test_generate_uses_heuristic_without_key(self, service, host):
        _populate(host)
        with patch("classifier.httpx.post") as mock_post:
            result = service.generate_preview()
        mock_post.assert_not_called()
        assert result["ok"] is True
        draft = result["draft"]
        assert draft["used_fallback"] is True
        assert draft["ai_error_code"] == "MISSING_API_KEY"
        assert len(draft["tabs"]) == 4
        assert result["summary"]["grouped"] + result["summary"]["skipped"] == 4
        assert service.get_last_ai_meta()["ai_meta"]["ai_error_code"] == "MISSING_API_KEY"

    def test_stored_draft_round_trip(self, service, host):
        _populate(host)
        draft = service.generate_preview()["draft"]
        assert service.get_preview()["draft"] == draft

        draft["groups"][0]["name"] = "Renamed"
        saved = service.save_preview(draft)
        assert saved["draft"]["groups"][0]["name"] == "Renamed"
        assert service.get_preview()["draft"]["groups"][0]["name"] == "Renamed"

        assert service.discard_preview() == {"ok": True}
        assert service.get_preview()["error"] == "NO_PREVIEW_DRAFT"

    def test_corrupt_stored_draft(self, service, kv):
        kv.set({"runs.previewDraft": {"tabs": "nope"}})
        assert service.get_preview() == {"ok": False, "error": "INVALID_PREVIEW_DRAFT"}
        assert service.apply_preview() == {"ok": False, "error": "INVALID_PREVIEW_DRAFT"}

    def test_apply_without_draft(self, service):
        assert service.apply_preview() == {"ok": False, "error": "NO_PREVIEW_DRAFT"}


class TestApplyAndRevert:
    def test_apply_then_revert(self, service, host):
        _populate(host)
        host.add_group(9, "Old", "red", [1, 3])
        before = host.membership()

        service.generate_preview()
        applied = service.apply_preview()
        assert applied["ok"] is True
        summary = applied["summary"]
        assert summary["grouped_tabs"] + summary["skipped_tabs"] == 4
        assert service.get_preview()["error"] == "NO_PREVIEW_DRAFT"

        last = service.get_last_run_summary()["summary"]
        assert last["snapshot_id"] == applied["snapshot_id"]

        history = service.list_revert_history()["history"]
        assert history[0]["snapshot_id"] == applied["snapshot_id"]
        assert history[0]["grouped_tabs"] == summary["grouped_tabs"]

        reverted = service.revert(applied["snapshot_id"])
        assert reverted["ok"] is True
        after = host.membership()
        assert after[5] == before[5] is None
        assert after[1] == after[3] is not None
        assert host.groups[after[1]].title == "Old"
        assert after[2] is None and after[4] is None

    def test_apply_edited_draft(self, service, host):
        _populate(host)
        draft = service.generate_preview()["draft"]
        draft["groups"] = [{"id": "g", "name": "Everything", "tab_indices": [0, 1, 2, 3]}]
        applied = service.apply_preview(draft)
        assert applied["summary"] == {"grouped_tabs": 4, "groups_created": 1, "skipped_tabs": 0}

    def test_history_keeps_three(self, service, host):
        _populate(host)
        ids = []
        for _ in range(4):
            service.generate_preview()
            ids.append(service.apply_preview()["snapshot_id"])
        history = [h["snapshot_id"] for h in service.list_revert_history()["history"]]
        assert history == list(reversed(ids))[:3]
        assert service.revert(ids[0])["error"] == "SNAPSHOT_NOT_FOUND"


class TestArchiveFlow:
    def _payload(self, host):
        _populate(host)
        return [
            {"chrome_tab_id": n + 1, "url": url, "title": title, "window_id": 1, "tab_index": n}
            for n, (url, title) in enumerate(TITLES[:3])
        ]

    def test_archive_undo_after_expiry(self, service, host, clock):
        result = service.archive_and_close(self._payload(host), reason="group", group_name="Python")
        assert result["ok"] is True
        assert result["closed_count"] == 3

        clock.advance(11)
        assert service.undo_last_archive(result["undo_token"]["token_id"]) == {
            "ok": False, "error": "UNDO_TOKEN_EXPIRED",
        }
        archive = service.get_archive(result["archive_id"])["archive"]
        assert len(archive["tabs"]) == 3
        assert archive["group_name"] == "Python"

    def test_archive_then_undo(self, service, host):
        result = service.archive_and_close(self._payload(host))
        undone = service.undo_last_archive(result["undo_token"]["token_id"])
        assert undone == {"ok": True, "archive_id": result["archive_id"], "restored_count": 3, "skipped_count": 0}
        assert service.undo_last_archive(result["undo_token"]["token_id"])["error"] == "NO_UNDO_TOKEN"

    def test_list_archives(self, service, host, clock):
        payload = self._payload(host)
        first = service.archive_and_close(payload[:1])
        clock.advance(1)
        second = service.archive_and_close(payload[1:])
        archives = service.list_archives()["archives"]
        assert [a["archive_id"] for a in archives] == [second["archive_id"], first["archive_id"]]
