from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd
from sqlalchemy.orm import Session

from ..config.defaults import FACT_COLUMN_ALIASES, REQUIRED_FACT_COLUMNS
from ..db import SalesFact
from ..utils.logger import get_logger
from .periods import month_to_number

logger = get_logger("service.ingest")

ENCODINGS = ["utf-8", "latin1", "cp1252"]


def _read_csv(file_stream: io.BytesIO, filename: str) -> pd.DataFrame:
    for encoding in ENCODINGS:
        try:
            file_stream.seek(0)
            df = pd.read_csv(file_stream, encoding=encoding)
            logger.info(f"Successfully read CSV '{filename}' with encoding '{encoding}'")
            return df
        except (UnicodeDecodeError, pd.errors.ParserError):
            logger.warning(f"Failed to read CSV '{filename}' with encoding '{encoding}'")
            continue
    raise ValueError(f"Could not decode CSV file '{filename}' with attempted encodings.")


def _load_df_from_bytes(file_bytes: bytes, filename: str) -> pd.DataFrame:
    ext = Path(filename).suffix.lower()
    file_stream = io.BytesIO(file_bytes)

    if ext == ".csv":
        df = _read_csv(file_stream, filename)
    elif ext in [".xlsx", ".xls"]:
        try:
            file_stream.seek(0)
            df = pd.read_excel(file_stream, engine="openpyxl" if ext == ".xlsx" else "xlrd")
        except Exception as e:
            logger.warning(f"Reading Excel file '{filename}' failed, trying fallback engine. Error: {e}")
            file_stream.seek(0)
            fallback_engine = "xlrd" if ext == ".xlsx" else "openpyxl"
            df = pd.read_excel(file_stream, engine=fallback_engine)
    else:
        logger.info(f"Unknown extension '{ext}', attempting to read as CSV.")
        df = _read_csv(file_stream, filename)

    df.columns = [str(c).strip() for c in df.columns]
    df.replace([np.inf, -np.inf], np.nan, inplace=True)
    return df


def normalize_fact_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Canonical column names, typed year/month/value, blank names dropped."""
    renamed = {}
    for col in df.columns:
        key = str(col).strip().lower().replace(" ", "_")
        renamed[col] = FACT_COLUMN_ALIASES.get(key, key)
    df = df.rename(columns=renamed)

    missing = [c for c in REQUIRED_FACT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    out = pd.DataFrame({
        "year": pd.to_numeric(df["year"], errors="coerce"),
        "month": df["month"].map(month_to_number),
        "type": df["type"].astype(str).str.strip(),
        "values_type": df["values_type"].astype(str).str.strip().str.upper(),
        "customer_name": df["customername"],
        "sales_rep": df["salesrepname"],
        "product_group": df["productgroup"] if "productgroup" in df.columns else None,
        "country": df["countryname"] if "countryname" in df.columns else None,
        "value": pd.to_numeric(df["values"], errors="coerce").fillna(0.0),
    })
    invalid = out["year"].isna() | out["month"].isna()
    if invalid.any():
        logger.warning(f"Dropping {int(invalid.sum())} rows with an invalid year or month")
        out = out[~invalid].copy()
    out["year"] = out["year"].astype(int)
    out["month"] = out["month"].astype(int)
    for col in ("customer_name", "sales_rep", "product_group", "country"):
        out[col] = out[col].map(lambda v: str(v).strip() if v is not None and not pd.isna(v) else None)
    return out


def save_sales_facts_df(db: Session, division: str, df: pd.DataFrame, replace: bool = False) -> int:
    code = division.strip().upper()
    if replace:
        deleted = db.query(SalesFact).filter(SalesFact.division == code).delete(synchronize_session=False)
        logger.info(f"Removed {deleted} existing facts for division {code}")
    records = []
    for row in df.itertuples(index=False):
        records.append(
            {
                "division": code,
                "year": int(row.year),
                "month": int(row.month),
                "type": row.type,
                "values_type": row.values_type,
                "customer_name": row.customer_name,
                "sales_rep": row.sales_rep,
                "product_group": row.product_group,
                "country": row.country,
                "value": float(row.value),
            }
        )
    if records:
        db.bulk_insert_mappings(SalesFact, records)
    db.commit()
    return len(records)


def ingest_facts_file(db: Session, division: str, file_bytes: bytes, filename: str, replace: bool = False) -> Dict[str, Any]:
    df = normalize_fact_frame(_load_df_from_bytes(file_bytes, filename))
    inserted = save_sales_facts_df(db, division, df, replace=replace)
    logger.info(f"Ingested {inserted} facts from '{filename}' into division {division.upper()}")
    return {
        "filename": filename,
        "division": division.strip().upper(),
        "rows": inserted,
        "years": sorted(int(y) for y in df["year"].unique()),
        "salesReps": int(df["sales_rep"].nunique()),
        "customers": int(df["customer_name"].nunique()),
    }
