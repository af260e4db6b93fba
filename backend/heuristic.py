"""Deterministic local clustering, used whenever the AI pass is unusable."""

import logging
from collections import Counter

from models import GroupSuggestion, Tab
from tokens import domain_label, jaccard, pretty_token, tab_tokens

log = logging.getLogger(__name__)

JOIN_THRESHOLD = 0.26
REATTACH_THRESHOLD = 0.34
DOMAIN_BONUS = 0.06
COMPARE_MEMBERS = 4


class _Cluster:
    def __init__(self, index: int, domain: str):
        self.members = [index]
        self.primary_domain = domain


def _score(cluster: _Cluster, index: int, tabs: list[Tab], token_sets: list[frozenset]) -> float:
    sample = cluster.members[:COMPARE_MEMBERS]
    score = sum(jaccard(token_sets[index], token_sets[m]) for m in sample) / len(sample)
    if tabs[index].domain and tabs[index].domain == cluster.primary_domain:
        score += DOMAIN_BONUS
    return score


def _best_cluster(candidates, index, tabs, token_sets, threshold):
    best, best_score = None, 0.0
    for cluster in candidates:
        score = _score(cluster, index, tabs, token_sets)
        if score > best_score:
            best, best_score = cluster, score
    if best is not None and best_score >= threshold:
        return best
    return None


def _cluster_name(cluster: _Cluster, token_sets: list[frozenset]) -> str:
    counts: Counter[str] = Counter()
    for index in cluster.members:
        counts.update(sorted(token_sets[index]))
    shared = [(token, n) for token, n in counts.most_common() if n >= 2]
    if shared:
        return f"{pretty_token(shared[0][0])} Focus"
    return domain_label(cluster.primary_domain)


def group_tabs_heuristic(tabs: list[Tab]) -> list[GroupSuggestion]:
    """Greedy token-similarity clustering in collection order."""
    if not tabs:
        return []

    token_sets = [tab_tokens(t) for t in tabs]
    clusters: list[_Cluster] = []

    for index, tab in enumerate(tabs):
        target = _best_cluster(clusters, index, tabs, token_sets, JOIN_THRESHOLD)
        if target is None:
            clusters.append(_Cluster(index, tab.domain))
        else:
            target.members.append(index)

    # Second pass: fold stray singletons into established clusters.
    established = [c for c in clusters if len(c.members) > 1]
    if established:
        for cluster in [c for c in clusters if len(c.members) == 1]:
            index = cluster.members[0]
            target = _best_cluster(established, index, tabs, token_sets, REATTACH_THRESHOLD)
            if target is not None:
                target.members.append(index)
                cluster.members = []
        clusters = [c for c in clusters if c.members]

    ordered = sorted(clusters, key=lambda c: -len(c.members))
    log.info("Heuristic grouping: %d tabs into %d clusters", len(tabs), len(ordered))
    return [
        GroupSuggestion(name=_cluster_name(c, token_sets), tab_indices=list(c.members))
        for c in ordered
    ]
