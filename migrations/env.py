import logging
from logging.config import fileConfig

from alembic import context
from flask import current_app

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")


def _app_context():
    """Reuse the Flask-Migrate app when invoked via ``flask db``."""
    try:
        current_app._get_current_object()
    except RuntimeError:
        from eventcerts.app import create_app

        return create_app().app_context()
    return current_app.app_context()


def _skip_empty_autogenerate(context, revision, directives):
    if getattr(config.cmd_opts, "autogenerate", False):
        script = directives[0]
        if script.upgrade_ops.is_empty():
            directives[:] = []
            logger.info("No changes in events/certificates schema detected.")


def run_migrations_offline(target_metadata, url: str) -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url") or url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(target_metadata, engine) -> None:
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            process_revision_directives=_skip_empty_autogenerate,
        )
        with context.begin_transaction():
            context.run_migrations()


with _app_context():
    from eventcerts.app import db

    if context.is_offline_mode():
        run_migrations_offline(db.metadata, current_app.config["SQLALCHEMY_DATABASE_URI"])
    else:
        run_migrations_online(db.metadata, db.engine)
