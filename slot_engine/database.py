import os
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./interview_slots.db")

_is_sqlite = DATABASE_URL.startswith("sqlite")
# Concurrent claims wait on SQLite's write lock instead of failing fast
_connect_args = {"check_same_thread": False, "timeout": 30} if _is_sqlite else {}
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=_echo,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


def init_db(bind: Engine = None) -> None:
    """Initialize database - create all tables"""
    # Import all models to ensure they're registered with SQLModel metadata
    from slot_engine.models.reservation import InterviewReservation  # noqa: F401
    from slot_engine.models.slot_block import SlotBlock  # noqa: F401
    from slot_engine.models.slot_occupancy import SlotOccupancy  # noqa: F401
    from slot_engine.models.workspace_availability import WorkspaceAvailability  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
