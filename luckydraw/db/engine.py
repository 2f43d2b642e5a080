import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

load_dotenv()

# Repository root; relative sqlite paths in DB_URL are resolved against it
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./luckydraw.db"), ROOT_DIR
)


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create the engine used by the snapshot store.

    Parameters
    ----------
    database_url : Optional[str], default: None
        SQLAlchemy URL; falls back to ``DB_URL`` or ``sqlite:///./luckydraw.db``.
    echo : bool, default: False
        Log emitted SQL.
    """
    url = database_url or DEFAULT_SQLITE_URL
    options = {"echo": echo, "future": True}
    if not url.startswith("sqlite"):
        # reconnect after server-side idle timeouts
        options["pool_pre_ping"] = True
    return create_engine(url, **options)


def get_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Snapshots are read after the save transaction closes
        future=True,
    )
