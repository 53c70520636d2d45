from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import event
from sqlalchemy.pool import NullPool

from therasuite.config import ASYNC_DB_URL

class Base(DeclarativeBase):
    pass

# aiosqlite 커넥션은 이벤트 루프에 묶이므로 풀링하지 않음
if ASYNC_DB_URL.startswith("sqlite"):
    engine = create_async_engine(ASYNC_DB_URL, echo=False, poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_fk_on(dbapi_conn, _record):
        # ON DELETE CASCADE / SET NULL 동작
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()
else:
    engine = create_async_engine(ASYNC_DB_URL, echo=False, pool_pre_ping=True)

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_db():
    async with SessionLocal() as session:
        yield session

async def create_all():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def drop_all():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
