"""Builds grouping proposals: AI first, page enrichment, heuristic fallback, guardrails."""

import logging

from classifier import group_tabs_with_ai
from enrichment import enrich_tabs_with_page_context
from errors import ClassifierError
from heuristic import group_tabs_heuristic
from models import AiRunMeta, Settings, Tab
from postprocess import post_process_groups

log = logging.getLogger(__name__)


def build_groups_from_tabs(tabs: list[Tab], settings: Settings) -> dict:
    """Return {tabs, groups, used_fallback, enriched_context_used, hint, ai_error_code, ai_meta}.

    AI failures never propagate: they fall back to heuristic grouping.
    """
    working_tabs = tabs
    groups = []
    used_fallback = False
    enriched_context_used = False
    hint = ""
    ai_error_code = None
    ai_meta = AiRunMeta(primary_model=settings.model, fallback_model=settings.fallback_model)

    try:
        groups, ai_meta = group_tabs_with_ai(working_tabs, settings)

        if settings.include_scraped_context:
            enrichment = enrich_tabs_with_page_context(working_tabs, groups)
            working_tabs = enrichment.tabs
            hint = enrichment.hint

            if enrichment.enriched:
                enriched_context_used = True
                try:
                    groups, ai_meta = group_tabs_with_ai(working_tabs, settings)
                except ClassifierError as e:
                    ai_error_code = e.code
                    ai_meta = ai_meta.model_copy(update={"ai_error_code": e.code})
                    log.warning("Second-pass AI grouping failed (%s); keeping first pass", e.code)
                    hint = hint or f"Second-pass AI enrichment failed ({e.code}). Kept first-pass groups."
    except ClassifierError as e:
        ai_error_code = e.code
        ai_meta = ai_meta.model_copy(update={"ai_error_code": e.code})
        log.warning("AI grouping failed (%s); using local heuristic", e.code)
        groups = group_tabs_heuristic(working_tabs)
        used_fallback = True
        if not hint:
            hint = f"AI request failed ({e.code}). Used local heuristic grouping."

    processed = post_process_groups(groups, working_tabs)
    return {
        "tabs": working_tabs,
        "groups": processed,
        "used_fallback": used_fallback,
        "enriched_context_used": enriched_context_used,
        "hint": hint,
        "ai_error_code": ai_error_code,
        "ai_meta": ai_meta,
    }
