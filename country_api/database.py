import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from country_api.config import settings
from country_api.logging import setup_query_logging

logger = logging.getLogger("country_api.db")

Base = declarative_base()


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite starts transactions lazily on its own; take over BEGIN so that
    # SAVEPOINT/RELEASE nest inside the session transaction instead of committing it.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(url: str, **kwargs) -> Engine:
    """Create an engine for ``url``.

    Server databases get a fixed-size pool; callers beyond the limit wait for a
    free connection instead of failing. SQLite engines get savepoint support.
    Every engine reports slow queries on the country_api.db logger.
    """
    driver = make_url(url).drivername
    if driver.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
        setup_query_logging(engine)
        return engine

    kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
    kwargs.setdefault("max_overflow", 0)
    kwargs.setdefault("pool_timeout", None)
    kwargs.setdefault("pool_pre_ping", True)
    engine = create_engine(url, **kwargs)
    setup_query_logging(engine)
    return engine


engine = create_db_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create tables if absent and make sure the refresh metadata row exists."""
    from country_api import crud, models  # noqa: F401  (registers the tables)

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    factory = SessionLocal if bind is engine else sessionmaker(bind=bind)
    with factory() as db:
        crud.ensure_metadata_row(db)
        db.commit()
    logger.info("Database initialised (%s)", bind.url.render_as_string(hide_password=True))
