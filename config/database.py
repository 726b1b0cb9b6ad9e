from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from config.settings import settings

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str, **overrides):
    """Create the async engine; sqlite gets no pool sizing arguments."""
    options = {
        "pool_pre_ping": True,
        # Only echo SQL queries in debug mode
        "echo": settings.DEBUG,
    }
    if url.startswith("postgresql"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=settings.DB_POOL_RECYCLE,
            connect_args={"server_settings": {"timezone": "utc"}},
        )
    options.update(overrides)
    return create_async_engine(url, **options)


def build_sessionmaker(bind) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, autoflush=False, expire_on_commit=False)


engine = build_engine(DATABASE_URL)
SessionLocal = build_sessionmaker(engine)
Base = declarative_base()


async def get_db():
    async with SessionLocal() as db:
        yield db


async def init_models():
    # model modules register their tables on Base.metadata when imported
    import models.index  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
