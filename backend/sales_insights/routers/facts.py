from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.config_service import validate_division
from ..services.ingest_service import ingest_facts_file
from ..utils.logger import get_logger

router = APIRouter(prefix="/facts", tags=["facts"])
log = get_logger("router.facts")


@router.post("/upload")
async def upload_facts(
    file: UploadFile = File(...),
    division: str = Form("FP"),
    replace: bool = Form(False),
    db: Session = Depends(get_db),
):
    """Load a CSV/Excel export of sales rows into the facts table."""
    log.info(f"/facts/upload called - division={division}, replace={replace}, file={file.filename}")
    try:
        code = validate_division(division)
        content = await file.read()
        log.info(f"File {file.filename} read into memory, size={len(content)} bytes")
        summary = ingest_facts_file(db, code, content, file.filename or "upload.csv", replace=replace)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "success", **summary}
