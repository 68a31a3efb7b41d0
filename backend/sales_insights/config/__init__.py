from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

BASE_DIR = Path(__file__).resolve().parents[2]  # points to backend/


class Settings:
    # Database (defaults to a local SQLite file under backend/data)
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    SQLALCHEMY_ECHO: bool = os.getenv("SQLALCHEMY_ECHO", "false").lower() == "true"

    DATA_DIR: Path = Path(os.getenv("SALES_INSIGHTS_DATA_DIR", str(BASE_DIR / "data")))
    LOGS_DIR: Path = Path(os.getenv("SALES_INSIGHTS_LOGS_DIR", str(BASE_DIR / "logs")))
    LOG_LEVEL: str = os.getenv("SALES_INSIGHTS_LOG_LEVEL", "INFO")
    LOG_MAX_BYTES: int = int(os.getenv("SALES_INSIGHTS_LOG_MAX_BYTES", "5000000"))
    LOG_BACKUP_COUNT: int = int(os.getenv("SALES_INSIGHTS_LOG_BACKUP_COUNT", "5"))

    CORS_ORIGINS: List[str] = [
        o.strip()
        for o in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:3001,http://127.0.0.1:3001",
        ).split(",")
        if o.strip()
    ]

    # Upper bound for a single (period, measure) fetch when building a report
    FETCH_TIMEOUT_SEC: float = float(os.getenv("FETCH_TIMEOUT_SEC", "30"))


settings = Settings()
