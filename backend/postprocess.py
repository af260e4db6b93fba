"""Quality guardrails for AI and heuristic group suggestions.

Runs on any list of suggestions before it becomes a preview:

1. enforce unique, complete coverage of tab indices
2. rename generic groups
3. split weak groups (too large, low cohesion, domain heavy, low confidence)
4. merge single-tab groups into their closest multi-tab group
"""

import logging
import re
from collections import Counter

from models import GroupSuggestion, Tab
from tokens import jaccard, pretty_token, tab_tokens

log = logging.getLogger(__name__)

GENERIC_GROUP_NAMES = re.compile(r"\b(group|tabs|misc|other|random|stuff)\b", re.IGNORECASE)

MAX_GROUP_SIZE = 9
MIN_COHESION = 0.16
COHESION_MIN_SIZE = 3
DOMAIN_HEAVY_RATIO = 0.65
DOMAIN_HEAVY_MIN_SIZE = 5
MIN_CONFIDENCE = 0.62
SPLIT_CANDIDATE_TOKENS = 10
MERGE_THRESHOLD = 0.22
MAX_NAME_LEN = 40
UNGROUPED_NAME = "Ungrouped Focus"


def _copy(group: GroupSuggestion, **changes) -> GroupSuggestion:
    return group.model_copy(update=changes)


def average_group_similarity(indices: list[int], token_sets: list[frozenset]) -> float:
    if len(indices) <= 1:
        return 1.0
    total = 0.0
    pairs = 0
    for i in range(len(indices)):
        for j in range(i + 1, len(indices)):
            total += jaccard(token_sets[indices[i]], token_sets[indices[j]])
            pairs += 1
    return total / pairs


def dominant_domain_ratio(indices: list[int], tabs: list[Tab]) -> float:
    if not indices:
        return 0.0
    counts = Counter(tabs[i].domain or "unknown" for i in indices)
    return max(counts.values()) / len(indices)


def _token_frequency(indices: list[int], token_sets: list[frozenset]) -> Counter:
    frequency: Counter[str] = Counter()
    for index in indices:
        frequency.update(sorted(token_sets[index]))
    return frequency


def ensure_unique_coverage(groups: list[GroupSuggestion], tab_count: int) -> list[GroupSuggestion]:
    used: set[int] = set()
    normalized = []
    for group in groups:
        unique = []
        for index in group.tab_indices:
            if 0 <= index < tab_count and index not in used:
                used.add(index)
                unique.append(index)
        if unique:
            normalized.append(_copy(group, tab_indices=unique))

    for index in range(tab_count):
        if index not in used:
            normalized.append(GroupSuggestion(name=UNGROUPED_NAME, tab_indices=[index]))
    return normalized


def preferred_group_name(group: GroupSuggestion, token_sets: list[frozenset]) -> str:
    if not GENERIC_GROUP_NAMES.search(group.name or ""):
        return group.name
    frequency = _token_frequency(group.tab_indices, token_sets)
    if frequency:
        top_token = frequency.most_common(1)[0][0]
        return f"{pretty_token(top_token)} Focus"
    return "Focused Group"


def is_weak_group(group: GroupSuggestion, tabs: list[Tab], token_sets: list[frozenset]) -> bool:
    size = len(group.tab_indices)
    if size > MAX_GROUP_SIZE:
        return True
    if size >= COHESION_MIN_SIZE and average_group_similarity(group.tab_indices, token_sets) < MIN_COHESION:
        return True
    if size >= DOMAIN_HEAVY_MIN_SIZE and dominant_domain_ratio(group.tab_indices, tabs) >= DOMAIN_HEAVY_RATIO:
        return True
    return group.confidence is not None and group.confidence < MIN_CONFIDENCE


def group_by_dominant_token(indices: list[int], tabs: list[Tab], token_sets: list[frozenset]) -> list[tuple[str, list[int]]]:
    """Bucket members by their best shared token, falling back to domain."""
    frequency = _token_frequency(indices, token_sets)
    candidates = [token for token, count in frequency.most_common() if count >= 2][:SPLIT_CANDIDATE_TOKENS]

    buckets: dict[str, list[int]] = {}
    for index in indices:
        best_token = ""
        best_score = 0
        for token in candidates:
            if token in token_sets[index] and frequency[token] > best_score:
                best_token, best_score = token, frequency[token]
        key = best_token or tabs[index].domain or "misc"
        buckets.setdefault(key, []).append(index)
    return list(buckets.items())


def split_weak_groups(groups: list[GroupSuggestion], tabs: list[Tab], token_sets: list[frozenset]) -> list[GroupSuggestion]:
    result = []
    for group in groups:
        if not is_weak_group(group, tabs, token_sets):
            result.append(group)
            continue
        buckets = group_by_dominant_token(group.tab_indices, tabs, token_sets)
        if len(buckets) <= 1:
            result.append(group)
            continue
        log.debug("Splitting weak group %r into %d buckets", group.name, len(buckets))
        base_name = preferred_group_name(group, token_sets)
        for token, indices in buckets:
            result.append(_copy(group, name=f"{base_name} {token}"[:MAX_NAME_LEN], tab_indices=indices))
    return result


def merge_tiny_groups(groups: list[GroupSuggestion], token_sets: list[frozenset]) -> list[GroupSuggestion]:
    stable = [_copy(g, tab_indices=list(g.tab_indices)) for g in groups if len(g.tab_indices) > 1]
    tiny = [g for g in groups if len(g.tab_indices) <= 1]
    multi_tab = list(stable)

    for candidate in tiny:
        best_target = None
        best_score = 0.0
        if candidate.tab_indices:
            for target in multi_tab:
                score = jaccard(token_sets[candidate.tab_indices[0]], token_sets[target.tab_indices[0]])
                if score > best_score:
                    best_target, best_score = target, score
        if best_target is not None and best_score >= MERGE_THRESHOLD:
            best_target.tab_indices.extend(candidate.tab_indices)
        else:
            stable.append(candidate)
    return stable


def post_process_groups(groups: list[GroupSuggestion], tabs: list[Tab]) -> list[GroupSuggestion]:
    """Repair raw suggestions so every tab index lands in exactly one group."""
    if not tabs:
        return []

    token_sets = [tab_tokens(t) for t in tabs]
    covered = ensure_unique_coverage(groups or [], len(tabs))
    renamed = [_copy(g, name=preferred_group_name(g, token_sets)) for g in covered]
    split = split_weak_groups(renamed, tabs, token_sets)
    merged = merge_tiny_groups(split, token_sets)

    final = []
    for position, group in enumerate(merged):
        name = (group.name or f"Group {position + 1}")[:MAX_NAME_LEN]
        final.append(_copy(group, name=name, tab_indices=list(dict.fromkeys(group.tab_indices))))
    log.info("Post-processed %d suggestions into %d groups", len(groups or []), len(final))
    return final
