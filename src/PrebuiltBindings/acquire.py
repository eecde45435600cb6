# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.acquire",
#   "purpose": "Binding acquisition orchestrator.",
#   "sections": [
#     {"id": "types", "name": "Outcome Types", "anchor": "TYP", "kind": "api"},
#     {"id": "acquirer", "name": "Acquirer", "anchor": "class-acquirer", "kind": "class"},
#     {"id": "acquire", "name": "acquire", "anchor": "function-acquire", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""
Binding Acquisition Orchestrator

For every configured binding:

1. accept the local artifact if it already verifies (no network activity);
2. otherwise try each remote candidate strictly in order: create parent
   directories, materialize the candidate into the local path, verify it;
3. record one :class:`AttemptResult` per candidate and stop at the first
   accepted artifact.

Bindings are acquired concurrently and the run waits for all of them. If any
binding is exhausted, the build fallback runs exactly once for the whole set;
build failures are fatal. Afterwards every binding is verified again unless
``verify_build_output`` is disabled.

Run states: ``acquiring -> satisfied`` or ``acquiring -> building ->
satisfied | failed``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Literal, Optional, Sequence, Tuple

import httpx

from .build import run_build
from .config import BindingSpec
from .errors import (
    BuildError,
    BuildVerificationError,
    DecodeError,
    ExhaustionError,
    HttpStatusError,
    TransportError,
)
from .io.decode import materialize
from .io.filesystem import ensure_parent_dir
from .network.client import http_client
from .settings import BuilderSettings, Settings
from .verify import Rejected, VerificationOutcome, verify

LOGGER = logging.getLogger(__name__)

# --- Outcome Types ------------------------------------------------------------

AttemptOutcome = Literal[
    "accepted",  # downloaded and verified
    "transport_error",  # DNS, connect, TLS, timeout
    "http_error",  # non-2xx/non-redirect status, missing Location, redirect cap
    "decode_error",  # corrupt stream or disk write failure
    "io_error",  # parent directory could not be created
    "rejected",  # downloaded but does not load
]

Builder = Callable[[BuilderSettings, Optional[Path]], Awaitable[None]]
Verifier = Callable[[Path, Optional[str]], VerificationOutcome]


class RunState(str, enum.Enum):
    """States of one acquisition run."""

    ACQUIRING = "acquiring"
    BUILDING = "building"
    SATISFIED = "satisfied"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptResult:
    """Result of a single candidate attempt.

    Attributes:
        url: Candidate URL.
        outcome: What happened.
        reason: Human-readable error text for failed attempts.
        elapsed_ms: Wall-clock time for the attempt.
        status: Last HTTP status seen, when applicable.
        redirects: Number of redirect hops followed.
    """

    url: str
    outcome: AttemptOutcome
    reason: Optional[str] = None
    elapsed_ms: int = 0
    status: Optional[int] = None
    redirects: int = 0

    @property
    def is_success(self) -> bool:
        return self.outcome == "accepted"


@dataclass(frozen=True)
class BindingOutcome:
    """Tagged outcome for one binding: satisfied from ``source`` or exhausted."""

    name: str
    satisfied: bool
    source: Optional[str] = None
    attempts: Tuple[AttemptResult, ...] = ()

    @property
    def exhausted(self) -> bool:
        return not self.satisfied


@dataclass
class RunReport:
    """Summary of an acquisition run."""

    state: RunState
    outcomes: Tuple[BindingOutcome, ...] = ()
    built: bool = False
    history: List[RunState] = field(default_factory=list)

    @property
    def exhausted(self) -> Tuple[str, ...]:
        return tuple(outcome.name for outcome in self.outcomes if outcome.exhausted)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def _default_builder(settings: BuilderSettings, cwd: Optional[Path]) -> None:
    await run_build(settings, cwd=cwd)


def _default_verifier(path: Path, name: Optional[str]) -> VerificationOutcome:
    return verify(path, name)


# --- Acquirer -----------------------------------------------------------------


class Acquirer:
    """Drives fetch, decode, and verification for a set of bindings.

    Attributes:
        settings: HTTP, download, and builder settings.
        client: Optional shared AsyncClient; one is created per run otherwise.
        builder: Coroutine running the build fallback.
        verifier: Callable returning :class:`~PrebuiltBindings.verify.Accepted`
            or :class:`~PrebuiltBindings.verify.Rejected`.
        context: Project root, used as the build working directory.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        builder: Optional[Builder] = None,
        verifier: Optional[Verifier] = None,
        context: Optional[Path] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.client = client
        self.builder = builder or _default_builder
        self.verifier = verifier or _default_verifier
        self.context = context

    async def attempt(
        self, binding: BindingSpec, url: str, client: httpx.AsyncClient
    ) -> AttemptResult:
        """Materialize one candidate into ``binding.local`` and verify it."""
        started = time.perf_counter()
        extra = {"binding": binding.name, "url": url, "stage": "download"}
        LOGGER.info("Downloading '%s'...", url, extra=extra)
        try:
            ensure_parent_dir(binding.local)
        except OSError as exc:
            return AttemptResult(url, "io_error", str(exc), _elapsed_ms(started))

        try:
            result = await materialize(
                url,
                binding.local,
                client=client,
                max_redirects=self.settings.download.max_redirects,
                chunk_size=self.settings.download.chunk_size,
            )
        except TransportError as exc:
            return AttemptResult(url, "transport_error", str(exc), _elapsed_ms(started))
        except HttpStatusError as exc:
            return AttemptResult(
                url, "http_error", str(exc), _elapsed_ms(started), status=exc.status_code
            )
        except DecodeError as exc:
            return AttemptResult(url, "decode_error", str(exc), _elapsed_ms(started))

        redirects = len(result.hops) - 1
        outcome = self.verifier(binding.local, binding.name)
        if isinstance(outcome, Rejected):
            LOGGER.info("Prebuilt binding is incompatible", extra=extra)
            binding.local.unlink(missing_ok=True)
            return AttemptResult(
                url,
                "rejected",
                str(outcome.error),
                _elapsed_ms(started),
                status=200,
                redirects=redirects,
            )
        return AttemptResult(
            url, "accepted", None, _elapsed_ms(started), status=200, redirects=redirects
        )

    async def acquire_binding(
        self, binding: BindingSpec, client: httpx.AsyncClient
    ) -> BindingOutcome:
        """Satisfy one binding from its local path or its candidates, in order."""
        if self.verifier(binding.local, binding.name).accepted:
            return BindingOutcome(binding.name, True, source="local")

        attempts: List[AttemptResult] = []
        for url in binding.remote:
            result = await self.attempt(binding, url, client)
            attempts.append(result)
            if result.is_success:
                return BindingOutcome(binding.name, True, source=url, attempts=tuple(attempts))
            LOGGER.warning(
                "Candidate failed (%s): %s",
                result.outcome,
                result.reason,
                extra={
                    "binding": binding.name,
                    "url": url,
                    "stage": "candidate",
                    "status": result.status,
                    "elapsed_ms": result.elapsed_ms,
                },
            )
        return BindingOutcome(binding.name, False, attempts=tuple(attempts))

    async def _acquire_all(self, bindings: Sequence[BindingSpec]) -> Tuple[BindingOutcome, ...]:
        async with http_client(self.settings.http, client=self.client) as client:
            results = await asyncio.gather(
                *(self.acquire_binding(binding, client) for binding in bindings),
                return_exceptions=True,
            )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return tuple(results)  # type: ignore[arg-type]

    def _verify_build_output(self, bindings: Sequence[BindingSpec]) -> None:
        for binding in bindings:
            outcome = self.verifier(binding.local, binding.name)
            if isinstance(outcome, Rejected):
                raise BuildVerificationError(
                    f"Built binding '{binding.name}' at '{binding.local}' does not load: "
                    f"{outcome.error}"
                )

    async def run(self, bindings: Sequence[BindingSpec]) -> RunReport:
        """Acquire every binding, building from source if any is exhausted.

        Raises:
            BuildError: The build fallback failed or produced unloadable bindings.
        """
        report = RunReport(state=RunState.ACQUIRING, history=[RunState.ACQUIRING])
        report.outcomes = await self._acquire_all(bindings)
        if not report.exhausted:
            LOGGER.info("Prebuilt bindings installed!", extra={"stage": "install"})
            report.state = RunState.SATISFIED
            report.history.append(report.state)
            return report

        LOGGER.info(
            "Unable to install prebuilt bindings: %s",
            ExhaustionError(report.exhausted),
            extra={"stage": "install"},
        )
        report.state = RunState.BUILDING
        report.history.append(report.state)
        try:
            await self.builder(self.settings.builder, self.context)
            report.built = True
            if self.settings.verify_build_output:
                self._verify_build_output(bindings)
        except BuildError:
            report.state = RunState.FAILED
            report.history.append(report.state)
            raise
        report.state = RunState.SATISFIED
        report.history.append(report.state)
        return report


# --- acquire ------------------------------------------------------------------


async def acquire(
    bindings: Sequence[BindingSpec],
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    builder: Optional[Builder] = None,
    verifier: Optional[Verifier] = None,
    context: Optional[Path] = None,
) -> RunReport:
    """Convenience wrapper around :meth:`Acquirer.run`."""
    acquirer = Acquirer(
        settings, client=client, builder=builder, verifier=verifier, context=context
    )
    return await acquirer.run(bindings)


__all__ = [
    "Acquirer",
    "AttemptOutcome",
    "AttemptResult",
    "BindingOutcome",
    "RunReport",
    "RunState",
    "acquire",
]
