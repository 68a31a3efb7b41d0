import io
import tempfile
import unittest
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import sessionmaker

from sales_insights.db import SalesFact, init_db, make_engine
from sales_insights.models.entities import VOLUME
from sales_insights.services.fact_source import SqlFactSource
from sales_insights.services.ingest_service import ingest_facts_file, normalize_fact_frame
from sales_insights.services.periods import make_column

CSV = (
    "Year,Month,Type,Values_Type,Customer,SalesRep,Values,Country\n"
    "2025,January,Actual,KGS,Acme Co,Alice,100,UAE\n"
    "2025,2,Actual,kgs,Acme Co,Alice,50,UAE\n"
    "2025,Feb,Actual,Amount,Acme Co,Alice,900,UAE\n"
    "2025,Smarch,Actual,KGS,Beta,Bob,5,UAE\n"
    "bad,1,Actual,KGS,Beta,Bob,5,UAE\n"
    "2025,3,Budget,KGS,Beta,Bob,,UAE\n"
)


class NormalizeFrameTest(unittest.TestCase):
    def test_aliases_types_and_invalid_rows(self):
        raw = pd.read_csv(io.StringIO(CSV))
        with self.assertLogs("service.ingest", level="WARNING"):
            df = normalize_fact_frame(raw)
        self.assertEqual(len(df), 4)
        self.assertEqual(list(df["month"]), [1, 2, 2, 3])
        self.assertEqual(list(df["values_type"]), ["KGS", "KGS", "AMOUNT", "KGS"])
        self.assertEqual(df["value"].iloc[-1], 0.0)
        self.assertEqual(df["country"].iloc[0], "UAE")
        self.assertIsNone(df["product_group"].iloc[0])

    def test_missing_columns(self):
        raw = pd.DataFrame({"year": [2025], "month": [1]})
        with self.assertRaises(ValueError) as ctx:
            normalize_fact_frame(raw)
        self.assertIn("customername", str(ctx.exception))


class IngestFileTest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = make_engine(f"sqlite:///{Path(self._tmp.name) / 'test.db'}")
        init_db(self.engine)
        self.Session = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def tearDown(self):
        self.engine.dispose()
        self._tmp.cleanup()

    def test_csv_upload_is_readable_by_fact_source(self):
        with self.Session() as db:
            summary = ingest_facts_file(db, "fp", CSV.encode("utf-8"), "sales.csv")
        self.assertEqual(summary["division"], "FP")
        self.assertEqual(summary["rows"], 4)
        self.assertEqual(summary["years"], [2025])
        self.assertEqual(summary["salesReps"], 2)

        facts = SqlFactSource(self.Session).fetch_facts("FP", make_column(2025, "Q1", "Actual"), VOLUME)
        self.assertEqual([(f.customer, f.value) for f in facts], [("Acme Co", 150.0)])

    def test_replace_drops_previous_rows_of_division(self):
        with self.Session() as db:
            ingest_facts_file(db, "FP", CSV.encode("utf-8"), "sales.csv")
            ingest_facts_file(db, "FP", CSV.encode("utf-8"), "sales.csv", replace=True)
            self.assertEqual(db.query(SalesFact).count(), 4)

    def test_latin1_csv(self):
        data = CSV.replace("Acme Co", "Acmé Co").encode("latin1")
        with self.Session() as db:
            summary = ingest_facts_file(db, "FP", data, "sales.csv")
        self.assertEqual(summary["customers"], 2)


if __name__ == "__main__":
    unittest.main()
