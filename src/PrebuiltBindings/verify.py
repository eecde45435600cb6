"""Artifact verification: is a local file a loadable native module?

:func:`verify` loads the file with CPython's extension module loader and
returns :class:`Accepted` or :class:`Rejected`. Loading is scoped: whatever
``sys.modules`` held under the module name before the call is put back
afterwards, on success and on failure, so repeated checks leave no trace in
the import system.

CPython cannot unload a shared library once ``dlopen`` has mapped it; the
scope only covers the import-system state.
"""

from __future__ import annotations

import importlib.util
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from importlib.machinery import ExtensionFileLoader
from pathlib import Path
from types import ModuleType
from typing import Iterator, Optional, Union

from .errors import VerificationError

LOGGER = logging.getLogger(__name__)

_MISSING = object()

__all__ = [
    "Accepted",
    "Rejected",
    "VerificationOutcome",
    "ensure_verified",
    "module_name_for",
    "scoped_module_load",
    "verify",
]


@dataclass(frozen=True)
class Accepted:
    """The artifact loaded successfully."""

    path: Path

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    """The artifact is missing or failed to load."""

    path: Path
    error: BaseException

    @property
    def accepted(self) -> bool:
        return False


VerificationOutcome = Union[Accepted, Rejected]


def module_name_for(path: Path) -> str:
    """Return the module name implied by an artifact file name.

    Examples:
        >>> module_name_for(Path("build/Release/fast.so"))
        'fast'
        >>> module_name_for(Path("fast.cpython-312-x86_64-linux-gnu.so"))
        'fast'
    """
    return path.name.split(".", 1)[0]


@contextmanager
def scoped_module_load(name: str, path: Path) -> Iterator[ModuleType]:
    """Load ``path`` as extension module ``name`` and restore ``sys.modules`` on exit."""
    previous = sys.modules.get(name, _MISSING)
    try:
        loader = ExtensionFileLoader(name, str(path))
        spec = importlib.util.spec_from_loader(name, loader, origin=str(path))
        if spec is None:
            raise ImportError(f"Cannot create a module spec for '{path}'", name=name, path=str(path))
        module = importlib.util.module_from_spec(spec)
        loader.exec_module(module)
        yield module
    finally:
        if previous is _MISSING:
            sys.modules.pop(name, None)
        else:
            sys.modules[name] = previous  # type: ignore[assignment]


def verify(path: Union[str, Path], name: Optional[str] = None) -> VerificationOutcome:
    """Check whether ``path`` is a loadable native module.

    Args:
        path: Artifact location.
        name: Module name to load under; defaults to :func:`module_name_for`.

    Returns:
        :class:`Accepted` when the module initialises, otherwise
        :class:`Rejected` carrying the underlying error. Any exception raised
        while loading or initialising the module counts as a rejection.
    """
    path = Path(path)
    name = name or module_name_for(path)
    LOGGER.info("Testing '%s'...", path, extra={"binding": name, "stage": "verify"})
    if not path.is_file():
        error = FileNotFoundError(f"No artifact at '{path}'")
        LOGGER.info("Binding not found or incompatible.", extra={"binding": name, "stage": "verify"})
        return Rejected(path=path, error=error)
    try:
        with scoped_module_load(name, path):
            pass
    except Exception as exc:  # module init code may raise anything
        LOGGER.info(
            "Binding not found or incompatible.",
            extra={"binding": name, "stage": "verify", "error": str(exc)},
        )
        return Rejected(path=path, error=exc)
    return Accepted(path=path)


def ensure_verified(path: Union[str, Path], name: Optional[str] = None) -> Path:
    """Like :func:`verify` but raise :class:`VerificationError` on rejection."""
    outcome = verify(path, name)
    if isinstance(outcome, Rejected):
        raise VerificationError(
            f"'{outcome.path}' is not a loadable binding: {outcome.error}", path=str(outcome.path)
        ) from outcome.error
    return outcome.path
