from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .draw_snapshot import DrawSnapshotRecord  # noqa: F401

__all__ = [
    "Base",
    "DrawSnapshotRecord",
]
