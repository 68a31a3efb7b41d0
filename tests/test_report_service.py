import unittest
from datetime import date

from sales_insights.models.entities import AMOUNT, VOLUME, MergeRule, RawFact, RepGroup
from sales_insights.services.aggregator import SCOPE_DIVISION
from sales_insights.services.insights import InsightThresholds
from sales_insights.services.periods import make_column
from sales_insights.services.report_service import (
    build_customer_report,
    build_sales_rep_report,
    division_customer_shares,
    validate_columns,
)

PREV = make_column(2024, "FY", "Actual")
BUDGET = make_column(2025, "FY", "Budget")
BASE = make_column(2025, "FY", "Actual")
COLUMNS = [PREV, BUDGET, BASE]

ROWS = {
    PREV.key: [("Acme Co", "Alice", 80.0), ("Other", "Alice", 20.0), ("Beta", "Bob", 40.0)],
    BUDGET.key: [("Acme Co", "Alice", 120.0), ("Beta", "Bob", 50.0)],
    BASE.key: [
        ("Acme Co", "Alice", 100.0),
        ("Acme Corp", "Alice", 50.0),
        ("Other", "Alice", 30.0),
        ("Acme Group*", "Bob", 75.0),
        ("Beta", "Bob", 45.0),
        ("Gamma", "Carol", 10.0),
    ],
}


class FakeFactSource:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def fetch_facts(self, division, column, measure, sales_reps=None):
        self.calls.append((division, column.key, measure, tuple(sales_reps or ())))
        if column.key in self.failing:
            raise ConnectionError(f"{column.key} unavailable")
        wanted = {r.lower() for r in sales_reps} if sales_reps else None
        scale = 10.0 if measure == AMOUNT else 1.0
        return [
            RawFact(customer, column.key, measure, value * scale, rep)
            for customer, rep, value in ROWS.get(column.key, [])
            if wanted is None or rep.lower() in wanted
        ]

    def list_sales_reps(self, division):
        return ["Alice", "Bob", "Carol"]


class FakeRuleStore:
    def __init__(self, rules):
        self.rules = list(rules)

    def get_rules(self, division, sales_rep=None):
        return [r for r in self.rules if (r.sales_rep or None) == (sales_rep or None)]

    def get_all_rules_for_division(self, division):
        return list(self.rules)


class FakeGroupStore:
    def __init__(self, groups=()):
        self.groups = list(groups)

    def get_groups(self, division):
        return list(self.groups)


ACME_RULE = MergeRule("FP", "Acme Group", ("Acme Co", "Acme Corp"), "Alice")


class CustomerReportTest(unittest.IsolatedAsyncioTestCase):
    async def build(self, **kwargs):
        params = {
            "division": "fp",
            "columns": COLUMNS,
            "facts": FakeFactSource(kwargs.pop("failing", ())),
            "rules": FakeRuleStore(kwargs.pop("rules", [ACME_RULE])),
            "groups": FakeGroupStore(kwargs.pop("groups", ())),
            "base_key": BASE.key,
            "thresholds": InsightThresholds(),
            "today": date(2025, 6, 30),
        }
        params.update(kwargs)
        return await build_customer_report(**params)

    async def test_report_merges_across_reps(self):
        report = await self.build()
        self.assertEqual(report.division, "FP")
        self.assertAlmostEqual(report.get_value("Acme Group*", BASE.key), 225.0)
        self.assertAlmostEqual(report.get_value("Acme Group*", BASE.key, AMOUNT), 2250.0)
        self.assertAlmostEqual(report.get_value("Acme Group*", PREV.key), 80.0)
        self.assertAlmostEqual(report.get_percent("Gamma", BASE.key), 10 / 310 * 100)
        self.assertEqual(report.failed_periods, [])

    async def test_entity_value_is_volume_only(self):
        report = await self.build()
        acme = next(e for e in report.entities if e.label == "Acme Group*")
        # 80 previous year + 120 budget + 225 actual, no amount rows mixed in
        self.assertAlmostEqual(acme.value, 425.0)

        amount_only = await self.build(measures=(AMOUNT,))
        acme = next(e for e in amount_only.entities if e.label == "Acme Group*")
        self.assertAlmostEqual(acme.value, 4250.0)

    async def test_every_period_is_fully_distributed(self):
        report = await self.build()
        for col in COLUMNS:
            raw = sum(v for _, _, v in ROWS[col.key])
            matrix = report.matrix(VOLUME)
            self.assertAlmostEqual(sum(matrix.get_value(l, col.key) for l in matrix.labels), raw)

    async def test_failed_period_becomes_zero(self):
        report = await self.build(failing=[PREV.key])
        self.assertEqual(report.failed_periods, [PREV.key])
        self.assertEqual(report.matrix(VOLUME).period_total(PREV.key), 0.0)
        self.assertAlmostEqual(report.get_value("Acme Group*", BASE.key), 225.0)
        self.assertEqual(report.get_snapshot().to_dict()["failedPeriods"], [PREV.key])

    async def test_group_selection_limits_reps(self):
        report = await self.build(sales_rep="North", groups=[RepGroup("North", ("Alice", "Carol"))])
        self.assertEqual(report.sales_reps, ["Alice", "Carol"])
        self.assertEqual(sorted(report.matrix(VOLUME).labels), ["Acme Group*", "Gamma", "Other"])
        self.assertAlmostEqual(report.get_value("Acme Group*", BASE.key), 150.0)

    async def test_division_scope(self):
        rule = MergeRule("FP", "Acme Group", ("Acme Co", "Beta"))
        report = await self.build(rules=[rule], scope=SCOPE_DIVISION)
        self.assertAlmostEqual(report.get_value("Acme Group*", BASE.key), 100.0 + 75.0 + 45.0)

    async def test_single_measure(self):
        report = await self.build(measures=(VOLUME,))
        with self.assertRaises(KeyError):
            report.matrix(AMOUNT)
        snapshot = report.get_snapshot().to_dict()
        self.assertFalse(snapshot["hasPreviousYearData"])

    async def test_snapshot_and_payload(self):
        report = await self.build()
        snapshot = report.get_snapshot().to_dict()
        self.assertTrue(snapshot["hasPreviousYearData"])
        self.assertAlmostEqual(snapshot["totals"]["totalActual"], 310.0)

        payload = report.to_dict(hide_budget_forecast=True)
        self.assertEqual(payload["basePeriodIndex"], 1)
        self.assertEqual(payload["rows"][0]["label"], "Acme Group*")
        self.assertNotIn(BUDGET.key, payload["rows"][0]["values"])
        self.assertEqual(payload["topN"]["totalCustomers"], len(report.entities))

    async def test_invalid_requests(self):
        with self.assertRaises(ValueError):
            await self.build(division="SB")
        with self.assertRaises(ValueError):
            await self.build(division="XX")
        with self.assertRaises(ValueError):
            await self.build(base_key="1999-FY-Actual")
        with self.assertRaises(ValueError):
            await self.build(measures=("WEIGHT",))
        with self.assertRaises(ValueError):
            await self.build(columns=[])


class SalesRepReportTest(unittest.IsolatedAsyncioTestCase):
    async def test_groups_and_failures(self):
        matrix, failed = await build_sales_rep_report(
            "FP", [PREV, BASE], FakeFactSource(failing=[PREV.key]), FakeGroupStore([RepGroup("North", ("Alice", "Bob"))])
        )
        self.assertEqual(failed, [PREV.key])
        self.assertEqual(matrix.labels, ["North", "Carol"])
        self.assertAlmostEqual(matrix.get_value("North", BASE.key), 300.0)


class HelpersTest(unittest.IsolatedAsyncioTestCase):
    def test_validate_columns(self):
        validate_columns(COLUMNS)
        with self.assertRaises(ValueError):
            validate_columns([BASE, BASE])
        with self.assertRaises(ValueError):
            validate_columns([make_column(2020 + i, "FY", "Actual") for i in range(6)])

    async def test_division_customer_shares(self):
        report = await build_customer_report(
            "FP",
            [BASE],
            FakeFactSource(),
            FakeRuleStore([ACME_RULE]),
            FakeGroupStore(),
            measures=(AMOUNT,),
            thresholds=InsightThresholds(),
        )
        shares = division_customer_shares(report.matrix(AMOUNT), BASE.key)
        self.assertEqual(shares["customers"][0]["label"], "Acme Group*")
        self.assertTrue(shares["customers"][0]["isMerged"])
        self.assertAlmostEqual(shares["totalSales"], 3100.0)
        self.assertAlmostEqual(shares["topCustomer"], 225 / 310 * 100)
        self.assertAlmostEqual(shares["avgSalesPerCustomer"], 3100.0 / 4)


if __name__ == "__main__":
    unittest.main()
