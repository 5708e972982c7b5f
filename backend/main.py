from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database import get_db

# ENV
from config.env import ENV, CORS_ALLOWED_ORIGINS, LOG_LEVEL, validate_production_env

# ROUTES
from routes.orders import router as orders_router
from routes.wallet import router as wallet_router
from routes.credit import router as credit_router

# WORKERS
from workers.wallet_reconciliation_worker import wallet_reconciliation_worker

from utils.indexes import ensure_indexes

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

validate_production_env()
logger.info("ENV: %s", ENV)

app = FastAPI(
    title="Marketplace Settlement API",
    version="1.0.0",
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(orders_router)
app.include_router(wallet_router)
app.include_router(credit_router)

# -----------------------------
# HEALTH CHECKS
# -----------------------------

@app.get("/api/health")
async def health():

    return {"status": "ok"}

@app.get("/api/health/db")
async def health_db():
    db = get_db()
    await db.command("ping")
    return {"status": "mongodb connected"}

# -----------------------------
# STARTUP (ONE PLACE ONLY)
# -----------------------------

@app.on_event("startup")
async def startup():
    await ensure_indexes(get_db())
    asyncio.create_task(wallet_reconciliation_worker())
