"""Filesystem helpers: parent directories, cleanup, and release archives."""

from __future__ import annotations

import gzip
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import BindingSpec, default_binding_filename
from ..verify import ensure_verified

LOGGER = logging.getLogger(__name__)

PACK_COMPRESSLEVEL = 9

__all__ = ["clean_bindings", "ensure_parent_dir", "pack_binding", "pack_bindings"]


def ensure_parent_dir(path: Path) -> Path:
    """Create the parent directories of ``path``; existing directories are fine."""
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)
    return parent


def clean_bindings(bindings: Iterable[BindingSpec]) -> List[Path]:
    """Remove each binding's local artifact.

    Missing files are skipped; any other ``OSError`` propagates.

    Returns:
        The paths that were actually removed.
    """
    removed: List[Path] = []
    for binding in bindings:
        try:
            binding.local.unlink()
        except FileNotFoundError:
            continue
        LOGGER.info("Cleaned up %s", binding.local, extra={"binding": binding.name, "stage": "clean"})
        removed.append(binding.local)
    return removed


def pack_binding(binding: BindingSpec, output_dir: Optional[Path] = None) -> Path:
    """Gzip a verified binding into ``<output_dir>/<default-filename>.gz``.

    The artifact is verified first, so an unloadable binding never produces
    an archive. A write failure removes the partial archive.

    Args:
        binding: Binding to pack.
        output_dir: Archive directory; defaults to the current working directory.

    Raises:
        VerificationError: The local artifact does not load.
        OSError: Reading the artifact or writing the archive failed.
    """
    ensure_verified(binding.local, binding.name)
    output_dir = output_dir or Path.cwd()
    packfile = output_dir / f"{default_binding_filename(binding.name)}.gz"
    try:
        with binding.local.open("rb") as source, gzip.open(
            packfile, "wb", compresslevel=PACK_COMPRESSLEVEL
        ) as target:
            shutil.copyfileobj(source, target)
    except BaseException:
        packfile.unlink(missing_ok=True)
        raise
    LOGGER.debug("packed binding", extra={"binding": binding.name, "stage": "pack"})
    return packfile


def pack_bindings(bindings: Iterable[BindingSpec], output_dir: Optional[Path] = None) -> List[Path]:
    """Pack every binding; stops at the first failure."""
    return [pack_binding(binding, output_dir) for binding in bindings]
