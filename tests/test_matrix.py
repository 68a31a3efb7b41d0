import unittest

from sales_insights.models.entities import AMOUNT, VOLUME, CanonicalEntity, MergeRule, RawFact, RepGroup
from sales_insights.services.aggregator import resolve_entities
from sales_insights.services.matrix import build_matrix, build_rep_matrix, display_reps, expand_reps
from sales_insights.services.periods import NEW, make_column

PREV = make_column(2024, "FY", "Actual")
BASE = make_column(2025, "FY", "Actual")
COLUMNS = [PREV, BASE]

ACME_RULE = MergeRule("FP", "Acme Group", ("Acme Co", "Acme Corp"), "Alice")


def fact(customer, value, rep, column, measure=VOLUME):
    return RawFact(customer=customer, period_key=column.key, measure=measure, value=value, sales_rep=rep)


def sample_facts():
    return {
        PREV.key: [
            fact("Acme Co", 80.0, "Alice", PREV),
            fact("Other", 20.0, "Alice", PREV),
        ],
        BASE.key: [
            fact("Acme Co", 100.0, "Alice", BASE),
            fact("Acme Corp", 50.0, "Alice", BASE),
            fact("Other", 30.0, "Alice", BASE),
            fact("Newbie", 20.0, "Bob", BASE),
        ],
    }


def sample_matrix():
    facts = sample_facts()
    all_facts = [f for rows in facts.values() for f in rows]
    entities = resolve_entities(all_facts, [ACME_RULE])
    return build_matrix(entities, COLUMNS, facts, VOLUME)


class BuildMatrixTest(unittest.TestCase):
    def setUp(self):
        self.matrix = sample_matrix()

    def test_values_per_entity_and_period(self):
        self.assertAlmostEqual(self.matrix.get_value("Acme Group*", BASE.key), 150.0)
        self.assertAlmostEqual(self.matrix.get_value("acme group*", PREV.key), 80.0)
        self.assertAlmostEqual(self.matrix.get_value("Newbie", PREV.key), 0.0)

    def test_entity_values_partition_period_totals(self):
        for col in COLUMNS:
            raw = sum(f.value for f in sample_facts()[col.key])
            self.assertAlmostEqual(sum(self.matrix.get_value(l, col.key) for l in self.matrix.labels), raw)
            self.assertAlmostEqual(self.matrix.period_total(col.key), raw)
            self.assertAlmostEqual(self.matrix.raw_total(col.key), raw)

    def test_percentages_sum_to_hundred(self):
        total = sum(self.matrix.get_percent(l, BASE.key) for l in self.matrix.labels)
        self.assertAlmostEqual(total, 100.0)
        self.assertAlmostEqual(self.matrix.get_percent("Acme Group*", BASE.key), 75.0)

    def test_deltas(self):
        self.assertEqual(self.matrix.get_delta("Newbie", PREV.key, BASE.key), NEW)
        self.assertAlmostEqual(self.matrix.get_delta("Other", PREV.key, BASE.key), 50.0)

    def test_unknown_period_raises_and_unknown_label_is_zero(self):
        with self.assertRaises(KeyError):
            self.matrix.get_value("Other", "1999-FY-Actual")
        with self.assertRaises(KeyError):
            self.matrix.period_total("1999-FY-Actual")
        self.assertEqual(self.matrix.get_value("Nobody", BASE.key), 0.0)
        self.assertEqual(self.matrix.get_percent("Nobody", BASE.key), 0.0)

    def test_missing_period_facts_resolve_to_zero(self):
        entities = resolve_entities(sample_facts()[BASE.key], [ACME_RULE])
        matrix = build_matrix(entities, COLUMNS, {BASE.key: sample_facts()[BASE.key]}, VOLUME)
        self.assertEqual(matrix.period_total(PREV.key), 0.0)
        self.assertEqual(matrix.get_percent("Other", PREV.key), 0.0)

    def test_sorted_labels(self):
        self.assertEqual(self.matrix.sorted_labels(BASE.key), ["Acme Group*", "Other", "Newbie"])
        self.assertEqual(self.matrix.sorted_labels(PREV.key)[:2], ["Acme Group*", "Other"])

    def test_frame_is_a_copy(self):
        frame = self.matrix.frame
        frame.loc[:, BASE.key] = 0.0
        self.assertAlmostEqual(self.matrix.get_value("Other", BASE.key), 30.0)

    def test_facts_outside_entities_are_reported(self):
        entity = CanonicalEntity("Other", False, ("Other",), ("Alice",), members=(("alice", "other"),))
        with self.assertLogs("service.matrix", level="WARNING") as logs:
            matrix = build_matrix([entity], [BASE], sample_facts(), VOLUME)
        self.assertTrue(any("not owned by any customer entity" in line for line in logs.output))
        self.assertAlmostEqual(matrix.period_total(BASE.key), 30.0)
        self.assertAlmostEqual(matrix.raw_total(BASE.key), 200.0)

    def test_to_dict(self):
        data = self.matrix.to_dict(labels=["Other"])
        self.assertEqual(data["measure"], VOLUME)
        self.assertEqual(len(data["columns"]), 3)
        self.assertEqual(data["columns"][1]["columnType"], "delta")
        row = data["rows"][0]
        self.assertEqual(row["label"], "Other")
        self.assertFalse(row["isMerged"])
        self.assertAlmostEqual(row["values"][BASE.key]["value"], 30.0)
        self.assertAlmostEqual(data["totals"][BASE.key], 200.0)

    def test_merged_row_lists_constituents(self):
        row = self.matrix.row("Acme Group*")
        self.assertTrue(row["isMerged"])
        self.assertEqual(sorted(row["constituents"]), ["Acme Co", "Acme Corp"])
        self.assertEqual(row["salesReps"], ["Alice"])

    def test_row_header_comes_from_entity(self):
        entity = self.matrix.entity("Acme Group*")
        row = self.matrix.row("Acme Group*")
        self.assertEqual({k: v for k, v in row.items() if k != "values"}, entity.to_dict())

    def test_row_for_unknown_label_is_empty(self):
        row = self.matrix.row("Nobody")
        self.assertEqual(row["label"], "Nobody")
        self.assertFalse(row["isMerged"])
        self.assertEqual((row["constituents"], row["salesReps"]), ([], []))
        self.assertEqual(row["values"][BASE.key], {"value": 0.0, "percent": 0.0})


class RepMatrixTest(unittest.TestCase):
    def setUp(self):
        self.facts = {
            BASE.key: [
                fact("A", 10.0, "Alice", BASE, AMOUNT),
                fact("B", 5.0, "bob", BASE, AMOUNT),
                fact("C", 7.0, "Carol", BASE, AMOUNT),
            ],
            PREV.key: [fact("A", 4.0, "Bob", PREV, AMOUNT)],
        }
        self.groups = [RepGroup("North", ("Alice", "Bob"))]

    def test_groups_sum_their_members(self):
        matrix = build_rep_matrix(COLUMNS, self.facts, self.groups, AMOUNT)
        self.assertEqual(matrix.labels, ["North", "Carol"])
        self.assertAlmostEqual(matrix.get_value("North", BASE.key), 15.0)
        self.assertAlmostEqual(matrix.get_value("North", PREV.key), 4.0)
        self.assertAlmostEqual(matrix.get_value("Carol", BASE.key), 7.0)
        self.assertTrue(matrix.entity("North").is_merged)
        self.assertAlmostEqual(matrix.period_total(BASE.key), 22.0)

    def test_without_groups_every_rep_is_a_row(self):
        matrix = build_rep_matrix(COLUMNS, self.facts, [], AMOUNT)
        # first spelling seen wins; reps are ordered by name
        self.assertEqual(matrix.labels, ["Alice", "Bob", "Carol"])

    def test_display_reps_puts_groups_first(self):
        out = display_reps(["Alice", "Bob", "Carol"], [RepGroup("North", ("alice", "Bob"))])
        self.assertEqual(out, [("North", ["Alice", "Bob"]), ("Carol", ["Carol"])])


class ExpandRepsTest(unittest.TestCase):
    def setUp(self):
        self.groups = [RepGroup("North", ("Alice", "alice ", "Bob"))]

    def test_all_means_no_filter(self):
        self.assertIsNone(expand_reps(None, self.groups))
        self.assertIsNone(expand_reps("  ", self.groups))
        self.assertIsNone(expand_reps("ALL", self.groups))

    def test_group_expands_to_unique_members(self):
        self.assertEqual(expand_reps("north", self.groups), ["Alice", "Bob"])

    def test_single_rep(self):
        self.assertEqual(expand_reps(" Carol ", self.groups), ["Carol"])


if __name__ == "__main__":
    unittest.main()
