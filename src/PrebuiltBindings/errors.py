"""Exception hierarchy shared across binding acquisition, packing, and builds.

The acquisition pipeline spans configuration expansion, HTTP retrieval, stream
decoding, native module verification, and the external build fallback. This
module groups the failure modes so callers can react to high-level categories
(per-candidate failures that advance to the next remote vs. fatal run-level
failures) while still having access to the specialised subclasses.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "PrebuiltBindingsError",
    "ConfigurationError",
    "CandidateError",
    "TransportError",
    "HttpStatusError",
    "TooManyRedirects",
    "DecodeError",
    "VerificationError",
    "ExhaustionError",
    "BuildError",
    "BuildToolchainMissing",
    "BuildExitError",
    "BuildSignalError",
    "BuildVerificationError",
]


class PrebuiltBindingsError(RuntimeError):
    """Base exception for binding acquisition, packing, or build failures."""


class ConfigurationError(PrebuiltBindingsError):
    """Raised when project metadata or binding configuration is invalid."""


class CandidateError(PrebuiltBindingsError):
    """Failure confined to a single remote candidate.

    The orchestrator recovers from these by advancing to the next candidate.
    """

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class TransportError(CandidateError):
    """Raised on connection, DNS, TLS, or timeout failures."""


class HttpStatusError(CandidateError):
    """Raised when a server answers with a non-2xx, non-redirect status."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message, url=url)
        self.status_code = status_code
        self.reason = reason


class TooManyRedirects(HttpStatusError):
    """Redirect chain exceeded the configured hop limit."""

    def __init__(self, max_hops: int, hops: Sequence[str]) -> None:
        self.max_hops = max_hops
        self.hops = tuple(hops)
        super().__init__(
            f"Redirect chain exceeded {max_hops} hops: {' -> '.join(self.hops)}",
            url=self.hops[0] if self.hops else None,
        )


class DecodeError(CandidateError):
    """Raised when a response body cannot be decoded or written to disk."""


class VerificationError(CandidateError):
    """Raised when a local artifact cannot be loaded as a native module."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class ExhaustionError(PrebuiltBindingsError):
    """No candidate produced a verified artifact for one or more bindings."""

    def __init__(self, names: Sequence[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"No usable prebuilt binding for: {', '.join(self.names)}")


class BuildError(PrebuiltBindingsError):
    """Base class for failures of the external build toolchain."""


class BuildToolchainMissing(BuildError):
    """The toolchain executable could not be started."""


class BuildExitError(BuildError):
    """The toolchain exited with a non-zero status."""

    def __init__(self, executable: str, returncode: int) -> None:
        self.executable = executable
        self.returncode = returncode
        super().__init__(f"{executable} failed with status {returncode}")


class BuildSignalError(BuildError):
    """The toolchain was terminated by a signal."""

    def __init__(self, executable: str, signal_name: str) -> None:
        self.executable = executable
        self.signal_name = signal_name
        super().__init__(f"{executable} was killed with signal {signal_name}")


class BuildVerificationError(BuildError):
    """The toolchain succeeded but a binding it produced does not load."""
