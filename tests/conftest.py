# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for the suite",
#   "sections": [
#     {"id": "native-module", "name": "native_module", "anchor": "function-native-module", "kind": "function"},
#     {"id": "reset-logging", "name": "reset_package_logging", "anchor": "function-reset-package-logging", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Puts ``src`` on ``sys.path`` and provides the fixtures every test module
leans on: a real native module from the running interpreter (the known-good
artifact), binding factories, and a fake release server.
"""

from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path
from typing import Callable, Iterator, Sequence, Tuple

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from PrebuiltBindings.config import BindingSpec  # noqa: E402
from PrebuiltBindings.logging_config import LOGGER_NAME  # noqa: E402
from PrebuiltBindings.testing import FakeReleaseServer, find_native_module  # noqa: E402

BindingFactory = Callable[..., BindingSpec]


@pytest.fixture(scope="session")
def native_module() -> Tuple[str, Path]:
    """``(name, path)`` of a stdlib extension module shipped as a shared file."""
    found = find_native_module()
    if found is None:
        pytest.skip("interpreter ships no stdlib extension modules as shared files")
    return found


@pytest.fixture
def native_bytes(native_module: Tuple[str, Path]) -> bytes:
    return native_module[1].read_bytes()


@pytest.fixture
def make_binding(tmp_path: Path, native_module: Tuple[str, Path]) -> BindingFactory:
    """Build a :class:`BindingSpec` named after the native module.

    The local path lives under ``tmp_path/build``; ``install=True`` copies the
    real module there so the binding verifies immediately.
    """

    def factory(
        remote: Sequence[str] = (),
        *,
        name: str | None = None,
        install: bool = False,
        subdir: str = "build",
    ) -> BindingSpec:
        module_name, module_path = native_module
        local = tmp_path / subdir / f"{name or module_name}{module_path.suffix}"
        if install:
            local.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(module_path, local)
        return BindingSpec(name=name or module_name, remote=tuple(remote), local=local)

    return factory


@pytest.fixture
def server() -> FakeReleaseServer:
    return FakeReleaseServer()


@pytest.fixture(autouse=True)
def reset_package_logging() -> Iterator[None]:
    """Drop handlers installed by ``setup_logging`` so streams never outlive a test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_prebuilt_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(logging.NOTSET)
