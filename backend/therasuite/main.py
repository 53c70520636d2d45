# /backend/therasuite/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from therasuite.config import AUTO_CREATE_TABLES, CORS_ORIGINS, LOG_LEVEL
from therasuite.db import get_db, create_all
from therasuite.api.routers import (
    auth, users, therapists, centres, patients, catalog, questionnaires,
    packages, sessions, bills, dashboard, treatment_plans,
)
from therasuite.kafka import start_kafka, stop_kafka

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # 앱 시작 시
    if AUTO_CREATE_TABLES:
        await create_all()
        logger.info("[startup] tables ensured")
    await start_kafka()
    try:
        yield
    finally:
        # 앱 종료 시
        await stop_kafka()

app = FastAPI(
    title="TheraSuite API",
    lifespan=lifespan,
)

# CORS 미들웨어를 가장 먼저 등록
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(therapists.router)
app.include_router(centres.router)
app.include_router(patients.router)
app.include_router(catalog.router)
app.include_router(questionnaires.router)
app.include_router(packages.router)
app.include_router(sessions.router)
app.include_router(bills.router)
app.include_router(dashboard.router)
app.include_router(treatment_plans.router)


@app.get("/health")
async def health():
    return {"ok": True}

@app.get("/db-health")
async def db_health(db: AsyncSession = Depends(get_db)):
    # 간단한 ping
    result = await db.execute(text("SELECT 1"))
    return {"db": "ok", "result": result.scalar_one()}
