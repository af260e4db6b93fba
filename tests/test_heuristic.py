"""Tests for heuristic.py: deterministic fallback clustering."""

from conftest import make_tab
from heuristic import group_tabs_heuristic


class TestGroupTabsHeuristic:
    def test_empty(self):
        assert group_tabs_heuristic([]) == []

    def test_identical_titles_form_one_cluster(self):
        tabs = [make_tab("Kubernetes rollout strategy", domain=d) for d in ("a.com", "b.com", "c.com")]
        groups = group_tabs_heuristic(tabs)
        assert len(groups) == 1
        assert groups[0].tab_indices == [0, 1, 2]
        assert groups[0].name == "Kubernetes Focus"

    def test_unrelated_tabs_stay_apart(self):
        tabs = [
            make_tab("Sourdough starter feeding", domain="bread.com"),
            make_tab("Kubernetes ingress controller", domain="k8s.io"),
        ]
        groups = group_tabs_heuristic(tabs)
        assert len(groups) == 2
        assert sorted(i for g in groups for i in g.tab_indices) == [0, 1]

    def test_singleton_named_after_domain(self):
        groups = group_tabs_heuristic([make_tab("Sourdough starter", domain="www.kingarthur.com")])
        assert groups[0].name == "Kingarthur"

    def test_sorted_by_size_descending(self):
        tabs = [
            make_tab("Sourdough starter feeding", domain="bread.com"),
            make_tab("Rust borrow checker errors", domain="rust.org"),
            make_tab("Rust borrow checker lifetimes", domain="rust.org"),
            make_tab("Rust borrow checker guide", domain="rust.org"),
        ]
        groups = group_tabs_heuristic(tabs)
        assert groups[0].tab_indices == [1, 2, 3]
        assert groups[1].tab_indices == [0]

    def test_domain_bonus_tips_borderline_match(self):
        # Jaccard 1/4 = 0.25 is below 0.26; the same-domain bonus lifts it over.
        same = [make_tab("alpha beta", domain="x.com"), make_tab("alpha gamma delta", domain="x.com")]
        other = [make_tab("alpha beta", domain="x.com"), make_tab("alpha gamma delta", domain="y.com")]
        assert len(group_tabs_heuristic(same)) == 1
        assert len(group_tabs_heuristic(other)) == 2

    def test_every_tab_assigned_once(self):
        tabs = [make_tab(t) for t in (
            "Python asyncio", "Python typing", "Cooking pasta", "Pasta sauce recipe", "Weather Berlin",
        )]
        groups = group_tabs_heuristic(tabs)
        flat = [i for g in groups for i in g.tab_indices]
        assert sorted(flat) == list(range(len(tabs)))
