import unittest

from sales_insights.models.entities import VOLUME, MergeRule, RawFact
from sales_insights.services.merge_resolver import (
    collect_customer_rows,
    find_rule_overlaps,
    resolve_all_reps,
    resolve_rep,
    rules_for_rep,
)

ACME_RULE = MergeRule(
    division="FP",
    merged_name="Acme Group",
    original_customers=("Acme Co", "ACME  CO", "Acme Corp"),
    sales_rep="Alice",
)


def _by_name(items):
    return {i.name: i for i in items}


class ResolveRepTest(unittest.TestCase):
    def test_acme_rule_merges_matching_rows(self):
        rows = {"Acme Co": 100.0, "Acme Corp": 50.0, "Other": 30.0}
        items = _by_name(resolve_rep(rows, [ACME_RULE], "Alice"))

        self.assertEqual(set(items), {"Acme Group*", "Other"})
        self.assertTrue(items["Acme Group*"].is_merged)
        self.assertAlmostEqual(items["Acme Group*"].value, 150.0)
        self.assertEqual(items["Acme Group*"].original_customers, ("Acme Co", "Acme Corp"))
        self.assertFalse(items["Other"].is_merged)
        self.assertAlmostEqual(items["Other"].value, 30.0)

    def test_every_raw_name_lands_in_exactly_one_item(self):
        rows = {"Acme Co": 1.0, "Acme Corp": 2.0, "Beta": 3.0, "Gamma": 4.0}
        rules = [
            ACME_RULE,
            MergeRule("FP", "Beta Holdings", ("Beta", "Beta Missing"), "Alice"),
        ]
        items = resolve_rep(rows, rules, "Alice")
        names = [n for i in items for n in i.original_customers]
        self.assertEqual(sorted(names), sorted(rows))
        self.assertAlmostEqual(sum(i.value for i in items), sum(rows.values()))

    def test_rule_without_matches_is_a_logged_noop(self):
        rule = MergeRule("FP", "Ghost", ("Nobody",), "Alice")
        with self.assertLogs("service.merge", level="DEBUG") as logs:
            items = resolve_rep({"Other": 5.0}, [rule], "Alice")
        self.assertEqual([i.name for i in items], ["Other"])
        self.assertTrue(any("matched no customers" in line for line in logs.output))

    def test_overlapping_rules_first_match_wins(self):
        first = MergeRule("FP", "First", ("Shared", "A"), "Alice")
        second = MergeRule("FP", "Second", ("Shared", "B"), "Alice")
        with self.assertLogs("service.merge", level="WARNING"):
            items = _by_name(resolve_rep({"Shared": 10.0, "A": 1.0, "B": 2.0}, [first, second], "Alice"))
        self.assertAlmostEqual(items["First*"].value, 11.0)
        self.assertAlmostEqual(items["Second*"].value, 2.0)
        self.assertEqual(items["Second*"].original_customers, ("B",))

    def test_inactive_rules_are_ignored(self):
        rule = MergeRule("FP", "Acme Group", ("Acme Co",), "Alice", is_active=False)
        items = resolve_rep({"Acme Co": 1.0}, [rule], "Alice")
        self.assertEqual([i.name for i in items], ["Acme Co"])

    def test_normalization_invariance(self):
        plain = resolve_rep({"Acme Co": 100.0, "Acme Corp": 50.0, "Other": 30.0}, [ACME_RULE], "Alice")
        noisy = resolve_rep({"  acme co": 100.0, "ACME CORP  ": 50.0, "Other": 30.0}, [ACME_RULE], "Alice")
        self.assertEqual(
            sorted((i.name, i.value, i.is_merged) for i in plain),
            sorted((i.name, i.value, i.is_merged) for i in noisy),
        )

    def test_resolution_is_idempotent(self):
        rows = {"Acme Co": 100.0, "Acme Corp": 50.0, "Other": 30.0}
        self.assertEqual(resolve_rep(rows, [ACME_RULE], "Alice"), resolve_rep(rows, [ACME_RULE], "Alice"))


class RuleSelectionTest(unittest.TestCase):
    def setUp(self):
        self.own = MergeRule("FP", "Own", ("X",), "Alice")
        self.division_wide = MergeRule("FP", "Shared", ("Y",))
        self.inactive = MergeRule("FP", "Old", ("Z",), "Bob", is_active=False)

    def test_rep_uses_own_rules(self):
        rules = rules_for_rep([self.own, self.division_wide], " alice ")
        self.assertEqual(rules, [self.own])

    def test_rep_without_rules_falls_back_to_division_rules(self):
        self.assertEqual(rules_for_rep([self.own, self.division_wide, self.inactive], "Bob"), [self.division_wide])

    def test_find_overlaps(self):
        a = MergeRule("FP", "A", ("Shared", "One"))
        b = MergeRule("FP", "B", ("shared ", "Two"))
        self.assertEqual(find_rule_overlaps([a, b]), [("shared ", "A", "B")])
        self.assertEqual(find_rule_overlaps([a, self.own]), [])


class CollectRowsTest(unittest.TestCase):
    def test_rows_are_summed_per_rep_and_normalized_name(self):
        facts = [
            RawFact("Acme Co", "p", VOLUME, 10.0, "Alice"),
            RawFact("  acme co ", "p", VOLUME, 5.0, "alice"),
            RawFact("Acme Co", "p", VOLUME, 7.0, "Bob"),
            RawFact("   ", "p", VOLUME, 99.0, "Bob"),
        ]
        rows = collect_customer_rows(facts)
        self.assertEqual(rows, {"Alice": {"Acme Co": 15.0}, "Bob": {"Acme Co": 7.0}})

    def test_resolve_all_reps_applies_each_reps_rules(self):
        rows = {"Alice": {"Acme Co": 100.0}, "Bob": {"Acme Co": 40.0}}
        items = resolve_all_reps(rows, [ACME_RULE])
        by_rep = {i.sales_rep: i for i in items}
        self.assertEqual(by_rep["Alice"].name, "Acme Group*")
        self.assertEqual(by_rep["Bob"].name, "Acme Co")


if __name__ == "__main__":
    unittest.main()
