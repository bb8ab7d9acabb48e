from sqlalchemy import Engine, create_engine, inspect, text
from sqlalchemy.orm import Session, sessionmaker

from bounce_report.db_models import DeliveryLog


class StoreUnavailableError(RuntimeError):
    pass


def build_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(database_url, future=True, connect_args=connect_args)


def ensure_store_ready(engine: Engine) -> None:
    # The log store is read-only here: a missing table is a configuration error, never created.
    table = DeliveryLog.__tablename__
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            has_logs = inspect(conn).has_table(table)
    except Exception as exc:
        raise StoreUnavailableError(f"log store is not reachable: {exc}") from exc

    if not has_logs:
        raise StoreUnavailableError(f"log store has no '{table}' table")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
