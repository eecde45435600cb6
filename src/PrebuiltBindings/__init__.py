"""Install prebuilt native extension modules, falling back to a source build.

Typical library use::

    import asyncio
    from pathlib import Path

    from PrebuiltBindings import acquire, load_project_config, load_settings

    config = load_project_config(Path("."))
    asyncio.run(acquire(config.bindings, settings=load_settings(), context=config.context))
"""

__version__ = "0.1.0"

from .acquire import AttemptResult, BindingOutcome, RunReport, RunState, acquire
from .config import BindingSpec, ResolvedConfig, load_project_config
from .errors import (
    BuildError,
    ConfigurationError,
    PrebuiltBindingsError,
    VerificationError,
)
from .settings import Settings, load_settings
from .verify import Accepted, Rejected, verify

__all__ = [
    "__version__",
    "Accepted",
    "AttemptResult",
    "BindingOutcome",
    "BindingSpec",
    "BuildError",
    "ConfigurationError",
    "PrebuiltBindingsError",
    "Rejected",
    "ResolvedConfig",
    "RunReport",
    "RunState",
    "Settings",
    "VerificationError",
    "acquire",
    "load_project_config",
    "load_settings",
    "verify",
]
