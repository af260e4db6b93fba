"""Tests for pipeline.py: AI first, enrichment second pass, heuristic fallback."""

from unittest.mock import patch

from conftest import make_tab
from enrichment import EnrichmentResult
from errors import ClassifierError
from models import AiRunMeta, GroupSuggestion, PageContext, Settings
from pipeline import build_groups_from_tabs

TABS = [
    make_tab("Python asyncio tutorial", domain="docs.python.org"),
    make_tab("Python asyncio tasks", domain="docs.python.org"),
    make_tab("Pasta carbonara recipe", domain="food.com"),
    make_tab("Pasta carbonara tips", domain="food.com"),
]
SETTINGS = Settings(openai_api_key="sk-test", include_scraped_context=True)
META = AiRunMeta(primary_model="gpt-4.1", fallback_model="gpt-4o-mini")


def _flat(groups):
    return sorted(i for g in groups for i in g.tab_indices)


AI_GROUPS = [
    GroupSuggestion(name="Async Python", tab_indices=[0, 1], confidence=0.9),
    GroupSuggestion(name="Carbonara", tab_indices=[2, 3], confidence=0.9),
]


class TestBuildGroupsFromTabs:
    @patch("pipeline.enrich_tabs_with_page_context")
    @patch("pipeline.group_tabs_with_ai")
    def test_ai_without_enrichment(self, mock_ai, mock_enrich):
        mock_ai.return_value = (AI_GROUPS, META)
        mock_enrich.return_value = EnrichmentResult(TABS, False, "No ambiguous tabs detected.")
        result = build_groups_from_tabs(TABS, SETTINGS)
        assert result["used_fallback"] is False
        assert result["enriched_context_used"] is False
        assert result["hint"] == "No ambiguous tabs detected."
        assert [g.name for g in result["groups"]] == ["Async Python", "Carbonara"]
        assert mock_ai.call_count == 1

    @patch("pipeline.enrich_tabs_with_page_context")
    @patch("pipeline.group_tabs_with_ai")
    def test_enriched_second_pass(self, mock_ai, mock_enrich):
        enriched = [t.model_copy(update={"page_context": PageContext(site_hints=["asyncio"])}) for t in TABS]
        second = [GroupSuggestion(name="Second", tab_indices=[0, 1, 2, 3], confidence=0.9)]
        mock_ai.side_effect = [(AI_GROUPS, META), (second, META)]
        mock_enrich.return_value = EnrichmentResult(enriched, True, "Enriched 4 tabs with page context.")

        result = build_groups_from_tabs(TABS, SETTINGS)
        assert result["enriched_context_used"] is True
        assert result["tabs"] == enriched
        assert mock_ai.call_args_list[1].args[0] == enriched
        assert _flat(result["groups"]) == [0, 1, 2, 3]

    @patch("pipeline.enrich_tabs_with_page_context")
    @patch("pipeline.group_tabs_with_ai")
    def test_second_pass_failure_keeps_first_pass(self, mock_ai, mock_enrich):
        mock_ai.side_effect = [(AI_GROUPS, META), ClassifierError("AI_TIMEOUT")]
        mock_enrich.return_value = EnrichmentResult(TABS, True, "")
        result = build_groups_from_tabs(TABS, SETTINGS)
        assert result["used_fallback"] is False
        assert result["ai_error_code"] == "AI_TIMEOUT"
        assert [g.name for g in result["groups"]] == ["Async Python", "Carbonara"]
        assert "Kept first-pass groups" in result["hint"]

    @patch("pipeline.enrich_tabs_with_page_context")
    @patch("pipeline.group_tabs_with_ai")
    def test_falls_back_to_heuristic(self, mock_ai, mock_enrich):
        mock_ai.side_effect = ClassifierError("AI_HTTP_500")
        result = build_groups_from_tabs(TABS, SETTINGS)
        assert result["used_fallback"] is True
        assert result["ai_error_code"] == "AI_HTTP_500"
        assert result["ai_meta"].ai_error_code == "AI_HTTP_500"
        assert result["hint"] == "AI request failed (AI_HTTP_500). Used local heuristic grouping."
        assert _flat(result["groups"]) == [0, 1, 2, 3]
        mock_enrich.assert_not_called()

    def test_missing_key_falls_back_without_network(self):
        with patch("classifier.httpx.post") as mock_post:
            result = build_groups_from_tabs(TABS, Settings(openai_api_key=""))
        mock_post.assert_not_called()
        assert result["used_fallback"] is True
        assert result["ai_error_code"] == "MISSING_API_KEY"
        assert _flat(result["groups"]) == [0, 1, 2, 3]

    @patch("pipeline.enrich_tabs_with_page_context")
    @patch("pipeline.group_tabs_with_ai")
    def test_scraping_disabled(self, mock_ai, mock_enrich):
        mock_ai.return_value = (AI_GROUPS, META)
        settings = SETTINGS.model_copy(update={"include_scraped_context": False})
        build_groups_from_tabs(TABS, settings)
        mock_enrich.assert_not_called()
