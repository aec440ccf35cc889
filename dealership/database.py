from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from dealership.core import config


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_size": config.DB_POOL_SIZE,
        "pool_timeout": config.DB_POOL_TIMEOUT_SECONDS,
        "pool_pre_ping": True,
    }


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    """Add the booking guard to a ``citas`` table created without it.

    Existing deployments share the column names of the models but lack
    ``slot_key`` and its unique index.
    """
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'citas' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('citas')}

        if 'slot_key' not in existing_columns:
            with engine.begin() as connection:
                connection.execute(text('ALTER TABLE citas ADD COLUMN slot_key VARCHAR(80)'))

        existing_indexes = {index['name'] for index in inspector.get_indexes('citas')}
        existing_uniques = {
            constraint['name'] for constraint in inspector.get_unique_constraints('citas')
        }

        with engine.begin() as connection:
            if 'uq_citas_slot_key' not in existing_indexes | existing_uniques:
                connection.execute(
                    text('CREATE UNIQUE INDEX uq_citas_slot_key ON citas(slot_key)')
                )
            if 'idx_citas_fecha_hora' not in existing_indexes:
                connection.execute(
                    text('CREATE INDEX idx_citas_fecha_hora ON citas(fecha_hora)')
                )

        _appointment_schema_checked = True
