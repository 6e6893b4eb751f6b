from __future__ import annotations

import unittest

from weekly_report.allocator import allocate, build_sources
from weekly_report.models import BudgetedSource, ReportSources


class AllocatorTests(unittest.TestCase):
    def test_commits_and_issues_split_evenly(self) -> None:
        sources = build_sources(ReportSources(commits="c" * 50_000, issues="i" * 50_000))
        allocation = allocate(sources, total_units=16_000, chars_per_unit=3)
        self.assertEqual(allocation.units, {"profile": 0, "commits": 8000, "issues": 8000, "discussions": 0})
        self.assertEqual(allocation.blocks["commits"], "commit logs: " + "c" * 24_000)
        self.assertNotIn("profile", allocation.prompt)
        self.assertNotIn("discussion", allocation.prompt)

    def test_all_sources_use_weights(self) -> None:
        sources = build_sources(ReportSources(profile="p", commits="c", issues="i", discussions="d"))
        allocation = allocate(sources, total_units=16_500, chars_per_unit=3)
        self.assertEqual(allocation.units, {"profile": 1500, "commits": 6000, "issues": 6000, "discussions": 3000})
        self.assertEqual(sum(allocation.units.values()), 16_500)

    def test_rounding_stays_within_budget(self) -> None:
        sources = build_sources(ReportSources(profile="p", commits="c", discussions="d"))
        allocation = allocate(sources, total_units=16_000, chars_per_unit=3)
        total = sum(allocation.units.values())
        self.assertLessEqual(total, 16_000)
        self.assertGreaterEqual(total, 16_000 - len(sources))

    def test_fixed_composition_order(self) -> None:
        sources = build_sources(ReportSources(discussions="talk", profile="about", issues="bugs"))
        prompt = allocate(sources).prompt
        self.assertLess(prompt.index("project profile: about"), prompt.index("issue posts: bugs"))
        self.assertLess(prompt.index("issue posts: bugs"), prompt.index("discussion posts: talk"))
        self.assertNotIn("commit logs", prompt)

    def test_empty_string_counts_as_present(self) -> None:
        allocation = allocate(build_sources(ReportSources(commits="")), total_units=100)
        self.assertEqual(allocation.units["commits"], 100)
        self.assertEqual(allocation.prompt, "commit logs: ")

    def test_nothing_present(self) -> None:
        allocation = allocate(build_sources(ReportSources()), total_units=100)
        self.assertTrue(allocation.is_empty)
        self.assertEqual(allocation.prompt, "")
        self.assertEqual(set(allocation.units.values()), {0})

    def test_text_reduced_to_character_share(self) -> None:
        sources = [BudgetedSource(name="commits", label="commit logs", weight=4, text="x" * 1000)]
        allocation = allocate(sources, total_units=100, chars_per_unit=3)
        self.assertEqual(allocation.blocks["commits"], "commit logs: " + "x" * 300)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
