"""Database base configuration"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from syncbridge.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.log_level.upper() == "DEBUG",
    future=True,
)

# expire_on_commit=False: rows are handed to handlers after the session closes.
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def init_db(bind=None):
    """Initialize database"""
    # Ensure all models are imported so SQLAlchemy metadata is populated.
    import syncbridge.models  # noqa: F401  (import for side-effects)

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
