"""Token extraction and Jaccard similarity over tabs."""

import re
from urllib.parse import urlparse

from models import Tab

STOP_WORDS = frozenset({
    "with", "from", "about", "that", "this", "when", "where", "which",
    "what", "your", "have", "will", "just", "into", "using", "guide",
    "best", "video", "watch", "the", "and", "for", "you", "are", "how",
    "http", "https", "www", "html",
})

MIN_TOKEN_LEN = 3
MIN_PATH_FRAGMENT_LEN = 4

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str | None) -> list[str]:
    """Lowercase alphanumeric tokens of at least 3 chars, stop words removed."""
    if not text or not isinstance(text, str):
        return []
    cleaned = _NON_ALNUM.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) >= MIN_TOKEN_LEN and t not in STOP_WORDS]


def url_path_hints(url: str | None) -> list[str]:
    if not url:
        return []
    try:
        path = urlparse(url).path
    except ValueError:
        return []
    hints = []
    for segment in path.split("/"):
        for token in tokenize(segment):
            if len(token) >= MIN_PATH_FRAGMENT_LEN and token not in hints:
                hints.append(token)
    return hints


def tab_tokens(tab: Tab) -> frozenset[str]:
    tokens = set(tokenize(tab.title))
    ctx = tab.page_context
    if ctx:
        tokens.update(tokenize(ctx.description))
        tokens.update(tokenize(ctx.snippet))
        tokens.update(tokenize(" ".join(ctx.headings or [])))
        for hint in ctx.site_hints or []:
            hint = hint.strip().lower()
            if len(hint) >= MIN_TOKEN_LEN and hint not in STOP_WORDS:
                tokens.add(hint)
    tokens.update(url_path_hints(tab.url))
    return frozenset(tokens)


def jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def similarity(a: Tab, b: Tab) -> float:
    """Jaccard overlap of the two tabs' token sets; 0 if either is empty."""
    return jaccard(tab_tokens(a), tab_tokens(b))


def pretty_token(token: str) -> str:
    return token[:1].upper() + token[1:]


def domain_label(domain: str) -> str:
    """'docs.python.org' -> 'Python'."""
    cleaned = re.sub(r"\.[a-z]+$", "", domain or "")
    base = cleaned.split(".")[-1] or cleaned
    return pretty_token(base) if base else "Unknown"
