import sys
import os
import asyncio
from logging.config import fileConfig
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from alembic import context

# Ensure Alembic can find your app
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Import config and models
from config.settings import settings  # Pydantic settings with .env already loaded
from config.database import Base      # Contains SQLAlchemy Base
import models.index  # noqa: F401  registers every table on Base.metadata

# Load Alembic config
config = context.config

# Configure logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Pull in the raw DATABASE_URL
raw_url = settings.DATABASE_URL
if not raw_url:
    raise ValueError("DATABASE_URL not set in .env")

# Inject into Alembic config, escaping % for ConfigParser
escaped_url = raw_url.replace("%", "%%")
config.set_main_option("sqlalchemy.url", escaped_url)

# Make the raw URL available for actual connections
DATABASE_URL = raw_url

# Attach your model metadata for `--autogenerate`
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=DATABASE_URL,            # use the raw, single-% URL here
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=DATABASE_URL.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode through the async driver."""
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
