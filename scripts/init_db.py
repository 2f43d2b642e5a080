from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from luckydraw.db.engine import make_engine


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    project_root = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def print_snapshot_tables() -> None:
    """Print the tables of the configured database and the saved draw keys."""
    engine = make_engine()
    insp = inspect(engine)
    tables = sorted(insp.get_table_names())
    print("Current tables:", ", ".join(tables))
    if "draw_snapshots" in tables:
        with engine.connect() as conn:
            keys = [row[0] for row in conn.exec_driver_sql("SELECT key FROM draw_snapshots")]
        print("Saved draws:", ", ".join(keys) if keys else "(none)")


def main() -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    upgrade_db()
    print_snapshot_tables()


if __name__ == "__main__":
    main()
