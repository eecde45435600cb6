"""I/O layer: streaming decode into artifact files and filesystem helpers."""

from .decode import (
    DecodeContext,
    GunzipStage,
    InflateStage,
    MaterializeResult,
    REDIRECT_STATUSES,
    materialize,
)
from .filesystem import clean_bindings, ensure_parent_dir, pack_binding, pack_bindings

__all__ = [
    "DecodeContext",
    "GunzipStage",
    "InflateStage",
    "MaterializeResult",
    "REDIRECT_STATUSES",
    "clean_bindings",
    "ensure_parent_dir",
    "materialize",
    "pack_binding",
    "pack_bindings",
]
