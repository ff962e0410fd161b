import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import Connection, inspect
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.sql.ddl import CreateSchema

from app.core.config import settings
from app.core.db import meta
from app.models import User  # noqa: F401  registers the users table on meta

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = meta


def include_name(name, type_, parent_names):
    """
    Restrict autogenerate to the configured schema.

    :param name: The name of the database object (e.g., table, schema).
    :param type_: The type of the database object (e.g., "table", "schema").
    :param parent_names: Names of the parent objects.
    :return: True if the object takes part in migrations.
    """
    if type_ == "schema":
        return name == settings.postgres_db_schema

    return True


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to the database."""
    context.configure(
        url=settings.db_url.human_repr(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_schemas=settings.postgres_db_schema is not None,
        version_table_schema=settings.postgres_db_schema,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    schema = settings.postgres_db_schema

    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_name=include_name,
        include_schemas=schema is not None,
        version_table_schema=schema,
    )

    if schema is not None and not inspect(connection).has_schema(schema_name=schema):
        connection.execute(CreateSchema(schema))
        connection.commit()

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = create_async_engine(settings.db_url.human_repr())

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
