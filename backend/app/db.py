from typing import Any, Dict

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from .config import settings
from .models import Base


def _engine_options(url: str) -> Dict[str, Any]:
    # aiosqlite connections are shared across tasks in local runs
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))
AsyncSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    """Create the plan tables if they do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
