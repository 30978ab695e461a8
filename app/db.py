"""Async engine for the journey store. The evaluation engine only ever reads."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings


def normalize_database_url(url: str) -> str:
    """Force the asyncpg driver onto plain postgres URLs (as Supabase hands them out)."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


engine = create_async_engine(
    normalize_database_url(settings.database_url),
    pool_pre_ping=True,
    execution_options={"postgresql_readonly": True},
)
read_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:  # type: ignore[misc]
    async with read_session() as session:
        try:
            yield session
        finally:
            # Nothing is ever written; release the implicit transaction.
            await session.rollback()
