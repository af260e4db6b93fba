"""OpenAI grouping adapter: request building, retry/timeout, response validation."""

import json
import logging
import threading
import time

import httpx

from errors import (
    AI_REQUEST_FAILED,
    AI_RESPONSE_EMPTY,
    AI_RESPONSE_INVALID_JSON,
    AI_RESPONSE_NO_VALID_GROUPS,
    AI_TIMEOUT,
    MISSING_API_KEY,
    ClassifierError,
    ai_http_error,
)
from models import AiRunMeta, GroupSuggestion, Settings, Tab

log = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
AI_TIMEOUT_SECONDS = 20.0
MAX_RETRIES = 1
RETRY_BACKOFF_SECONDS = 0.5
MAX_NAME_LEN = 60
MAX_RATIONALE_LEN = 160

SYSTEM_PROMPT = (
    "You are a browser tab organizer. Return JSON only with shape "
    '{"groups":[{"name":"...","tabIndices":[0,1],"confidence":0.0,"rationale":"..."}]}. '
    "Group by user intent/topic. Do not group primarily by domain. "
    "Same-domain tabs can belong to different topics. "
    "Use tab adjacency as a weak signal only."
)


def build_tabs_payload(tabs: list[Tab], include_full_url: bool) -> str:
    lines = []
    for index, tab in enumerate(tabs):
        pieces = [
            f"id:{index}",
            f"window:{tab.window_id}",
            f"position:{tab.tab_index}",
            f"title:{tab.title}",
            f"domain:{tab.domain}",
        ]
        if include_full_url and tab.url:
            pieces.append(f"url:{tab.url}")
        ctx = tab.page_context
        if ctx:
            if ctx.description:
                pieces.append(f"description:{ctx.description}")
            if ctx.snippet:
                pieces.append(f"snippet:{ctx.snippet}")
            if ctx.headings:
                pieces.append(f"headings:{' || '.join(ctx.headings)}")
            if ctx.site_hints:
                pieces.append(f"hints:{', '.join(ctx.site_hints)}")
        lines.append(" | ".join(pieces))
    return "\n".join(lines)


def build_request(tabs: list[Tab], settings: Settings, model: str) -> dict:
    user_prompt = (
        "Group these tabs by topic and intent.\n"
        "Rules:\n"
        "- Avoid giant single-domain buckets.\n"
        "- Keep unrelated tasks separate.\n"
        "- Keep group names specific and short.\n"
        f"Tabs:\n{build_tabs_payload(tabs, settings.include_full_url)}"
    )
    return {
        "model": model,
        "temperature": 0.2,
        "response_format": {"type": "json_object"},
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ],
    }


def _post_with_deadline(payload: dict, api_key: str) -> httpx.Response:
    """POST on a daemon thread; the caller waits at most AI_TIMEOUT_SECONDS in total.

    httpx.Timeout bounds each connect/read phase only, not the whole exchange.
    """
    outcome: dict = {}

    def _run():
        try:
            outcome["resp"] = httpx.post(
                OPENAI_URL,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=httpx.Timeout(AI_TIMEOUT_SECONDS),
            )
        except httpx.HTTPError as e:
            outcome["error"] = e

    worker = threading.Thread(target=_run, daemon=True)
    worker.start()
    worker.join(AI_TIMEOUT_SECONDS)
    if worker.is_alive():
        log.warning("AI request exceeded %.0fs; abandoning it", AI_TIMEOUT_SECONDS)
        raise ClassifierError(AI_TIMEOUT, f"no response within {AI_TIMEOUT_SECONDS:g}s")
    if "error" in outcome:
        raise outcome["error"]
    if "resp" not in outcome:
        raise ClassifierError(AI_REQUEST_FAILED, "request thread ended without a response")
    return outcome["resp"]


def _request_openai(payload: dict, api_key: str) -> dict:
    try:
        resp = _post_with_deadline(payload, api_key)
    except httpx.TimeoutException as e:
        raise ClassifierError(AI_TIMEOUT, str(e)) from e
    except httpx.HTTPError as e:
        raise ClassifierError(AI_REQUEST_FAILED, str(e)) from e

    if not resp.is_success:
        raise ClassifierError(ai_http_error(resp.status_code), resp.text[:200])
    try:
        return resp.json()
    except ValueError as e:
        raise ClassifierError(AI_RESPONSE_INVALID_JSON, "response body is not JSON") from e


def _first_balanced_object(text: str) -> str | None:
    """Return the first balanced {...} substring, honouring JSON string escapes."""
    start = text.find("{")
    while start >= 0:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:pos + 1]
        start = text.find("{", start + 1)
    return None


def _message_content(data) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None

    if isinstance(content, list):
        chunks = []
        for chunk in content:
            if isinstance(chunk, str):
                chunks.append(chunk)
            elif isinstance(chunk, dict) and isinstance(chunk.get("text"), str):
                chunks.append(chunk["text"])
        content = "\n".join(chunks)

    if not isinstance(content, str):
        raise ClassifierError(AI_RESPONSE_EMPTY)
    return content


def _is_index(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def validate_groups(raw_groups, tab_count: int) -> list[GroupSuggestion]:
    """Field-by-field validation of untrusted group dicts."""
    if not isinstance(raw_groups, list):
        return []

    groups = []
    for idx, raw in enumerate(raw_groups):
        if not isinstance(raw, dict):
            continue
        raw_indices = raw.get("tabIndices", raw.get("tab_indices"))
        indices: list[int] = []
        if isinstance(raw_indices, list):
            for value in raw_indices:
                if not _is_index(value):
                    continue
                value = int(value)
                if 0 <= value < tab_count and value not in indices:
                    indices.append(value)
        if not indices:
            continue

        name = raw.get("name")
        name = name.strip()[:MAX_NAME_LEN].rstrip() if isinstance(name, str) else ""
        confidence = raw.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None
        else:
            confidence = min(1.0, max(0.0, float(confidence)))
        rationale = raw.get("rationale")
        rationale = rationale.strip()[:MAX_RATIONALE_LEN].rstrip() or None if isinstance(rationale, str) else None

        groups.append(GroupSuggestion(
            name=name or f"Group {idx + 1}",
            tab_indices=indices,
            confidence=confidence,
            rationale=rationale,
        ))
    return groups


def parse_response_payload(data, tab_count: int) -> list[GroupSuggestion]:
    content = _message_content(data)
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        extracted = _first_balanced_object(content)
        if extracted is None:
            raise ClassifierError(AI_RESPONSE_INVALID_JSON)
        try:
            parsed = json.loads(extracted)
        except json.JSONDecodeError as e:
            raise ClassifierError(AI_RESPONSE_INVALID_JSON) from e

    raw_groups = parsed.get("groups") if isinstance(parsed, dict) else None
    groups = validate_groups(raw_groups, tab_count)
    if not groups:
        raise ClassifierError(AI_RESPONSE_NO_VALID_GROUPS)
    return groups


def _classify_with_model(tabs: list[Tab], settings: Settings, model: str) -> list[GroupSuggestion]:
    payload = build_request(tabs, settings, model)
    last_error: ClassifierError | None = None
    for attempt in range(MAX_RETRIES + 1):
        try:
            data = _request_openai(payload, settings.openai_api_key)
            return parse_response_payload(data, len(tabs))
        except ClassifierError as e:
            last_error = e
            log.warning("AI grouping attempt %d with %s failed: %s", attempt + 1, model, e.code)
            if attempt < MAX_RETRIES:
                time.sleep(RETRY_BACKOFF_SECONDS * (attempt + 1))
    raise last_error or ClassifierError(AI_REQUEST_FAILED)


def group_tabs_with_ai(tabs: list[Tab], settings: Settings) -> tuple[list[GroupSuggestion], AiRunMeta]:
    """Classify tabs into groups. Raises ClassifierError when no usable groups came back."""
    meta = AiRunMeta(primary_model=settings.model, fallback_model=settings.fallback_model)
    if not settings.openai_api_key.strip():
        raise ClassifierError(MISSING_API_KEY)

    try:
        return _classify_with_model(tabs, settings, settings.model), meta
    except ClassifierError as primary_error:
        fallback = settings.fallback_model
        if not fallback or fallback == settings.model:
            raise
        log.warning("Primary model %s failed (%s), trying %s", settings.model, primary_error.code, fallback)

    groups = _classify_with_model(tabs, settings, fallback)
    meta.used_fallback_model = True
    return groups, meta
