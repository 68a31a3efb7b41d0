from __future__ import annotations
from time import perf_counter

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .db import init_db
from .utils.logger import get_logger, setup_logging
from .routers import customers, facts, insights_config, merge_rules, sales_reps

setup_logging()
logger = get_logger("app")

app = FastAPI(title="Sales Insights API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root() -> dict:
    return {
        "message": "Sales Insights API",
        "endpoints": [
            "/customers/matrix",
            "/customers/insights",
            "/customers/division-insights",
            "/sales-reps/matrix",
            "/sales-reps/list?division=...",
            "/sales-reps/groups?division=...",
            "/merge-rules/add",
            "/merge-rules/save",
            "/merge-rules/get?division=...&sales_rep=...",
            "/merge-rules/division?division=...",
            "/merge-rules/delete?division=...&merged_name=...",
            "/facts/upload",
            "/insights/config",
            "/divisions/{division}",
        ],
        "docs": "/docs",
    }


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("DB initialized")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = perf_counter()
    client = request.client.host if request.client else "-"
    try:
        response = await call_next(request)
        duration = (perf_counter() - start) * 1000
        logger.info(
            f"{client} {request.method} {request.url.path} -> {response.status_code} ({duration:.1f} ms)"
        )
        return response
    except Exception as e:  # noqa: BLE001
        duration = (perf_counter() - start) * 1000
        logger.exception(
            f"Exception on {request.method} {request.url.path} after {duration:.1f} ms: {e}"
        )
        raise


app.include_router(customers.router)
app.include_router(sales_reps.router)
app.include_router(merge_rules.router)
app.include_router(facts.router)
app.include_router(insights_config.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8010)
