from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from tutorconnect.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_user_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _apply_column_migrations(table_name: str, migration_steps: list[tuple[str, str]], index_statements: list[str]) -> None:
    inspector = inspect(engine)

    if table_name not in inspector.get_table_names():
        return

    existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

    with engine.begin() as connection:
        for column_name, statement in migration_steps:
            if column_name not in existing_columns:
                connection.execute(text(statement))
        for statement in index_statements:
            connection.execute(text(statement))


def ensure_user_schema() -> None:
    global _user_schema_checked

    if _user_schema_checked:
        return

    with _schema_lock:
        if _user_schema_checked:
            return

        _apply_column_migrations(
            'users',
            [
                ('teacher_sessions', 'ALTER TABLE users ADD COLUMN teacher_sessions INTEGER DEFAULT 0'),
                ('teacher_students', 'ALTER TABLE users ADD COLUMN teacher_students INTEGER DEFAULT 0'),
                ('student_sessions', 'ALTER TABLE users ADD COLUMN student_sessions INTEGER DEFAULT 0'),
                ('student_teachers', 'ALTER TABLE users ADD COLUMN student_teachers INTEGER DEFAULT 0'),
                (
                    'email_appointment_complete',
                    'ALTER TABLE users ADD COLUMN email_appointment_complete BOOLEAN DEFAULT TRUE',
                ),
            ],
            [],
        )

        _user_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        _apply_column_migrations(
            'appointments',
            [
                ('proposed_by_id', 'ALTER TABLE appointments ADD COLUMN proposed_by_id INTEGER'),
                ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
                (
                    'completion_reminder_sent_at',
                    'ALTER TABLE appointments ADD COLUMN completion_reminder_sent_at TIMESTAMP',
                ),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_appointments_status_time ON appointments(status, date_time)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_chat_time ON appointments(chat_id, date_time)',
            ],
        )

        _appointment_schema_checked = True
