import logging
import math
import os
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context
from backend.app.routes.payments import register_payment_error_handlers
from backend.app.routes.payments import router as payments_router
from backend.app.subscriptions.repository import PostgresCompanyRepository

load_dotenv()

logger = logging.getLogger("payments")


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "job_portal"),
    user=os.getenv("DB_USER", "portal_user"),
    password=os.getenv("DB_PASSWORD", "portal_pass"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def get_conn():
    return psycopg2.connect(**DB_CFG)


app_context.configure(get_conn=get_conn)

app = FastAPI(title="Job Portal Payments API")

# Vite proxy origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payments_router)
register_payment_error_handlers(app)


@app.on_event("startup")
def ensure_payment_schema() -> None:
    if os.getenv("DB_AUTO_MIGRATE", "1").lower() not in {"1", "true", "yes"}:
        return
    try:
        PostgresCompanyRepository().ensure_schema()
    except psycopg2.Error:
        logger.exception("Failed to apply payment schema")
        raise


@app.get("/api/health")
def health():
    return {"status": "ok"}
