"""
AiNote Backend — Dependency Handle Interface
==============================================

What:  Abstract base class for one external dependency (the relational store
       or the AI provider) together with its connection and health state.
How:   Concrete handles implement _open() (one connection attempt) and
       classify() (map a failure onto FailureReason). The base class owns the
       state machine, the timeout around each attempt, and diagnostics.
Who:   Owned by ConnectionSupervisor; read by AdmissionGate and NoteWorkflow.
When:  configure() and connect() run during application startup only.

State machine:
    configure() with missing settings   → UNCONFIGURED (terminal)
    configure() with complete settings  → UNREACHABLE ("connection not attempted")
    connect() succeeds                  → READY
    connect() fails                     → UNREACHABLE (reason captured)
    close() on a READY handle           → UNREACHABLE ("connection closed")

    There is no background reconnection. The supervisor may call connect()
    again during startup (see ConnectionSupervisor); after startup the state
    is only read.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from app.exceptions import (
    AiNoteError,
    ConfigurationMissingError,
    DependencyUnreachableError,
)

logger = logging.getLogger(__name__)


class Dependency(str, Enum):
    """Names of the external dependencies a request can require."""

    STORE = "store"
    AI_PROVIDER = "ai_provider"


class DependencyState(str, Enum):
    UNCONFIGURED = "unconfigured"
    UNREACHABLE = "unreachable"
    READY = "ready"


class FailureReason(str, Enum):
    """Closed set of causes for a failed connection attempt."""

    AUTH_REJECTED = "auth_rejected"
    ENDPOINT_UNREACHABLE = "endpoint_unreachable"
    RESOURCE_ABSENT = "resource_absent"
    OTHER = "other"


REASON_MESSAGES = {
    FailureReason.AUTH_REJECTED: "credentials were rejected",
    FailureReason.ENDPOINT_UNREACHABLE: "endpoint could not be reached",
    FailureReason.RESOURCE_ABSENT: "target resource does not exist",
    FailureReason.OTHER: "connection failed",
}

# Values shipped in example .env files; treated as unset
PLACEHOLDER_VALUES = frozenset({"your_gemini_api_key_here", "changeme"})

MASK = "********"


@dataclass(frozen=True)
class ConfigResult:
    """Outcome of DependencyHandle.configure()."""

    ok: bool
    missing: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DependencyStatus:
    """Point-in-time, read-only view of one handle's state."""

    name: str
    state: DependencyState
    reason: Optional[FailureReason] = None
    missing: Tuple[str, ...] = ()
    closed: bool = False

    @property
    def ready(self) -> bool:
        return self.state is DependencyState.READY

    @property
    def message(self) -> str:
        """Human-readable reason, safe to return to clients."""
        if self.state is DependencyState.READY:
            return f"{self.name} is ready"
        if self.state is DependencyState.UNCONFIGURED:
            if self.missing:
                return f"{self.name} is not configured (missing: {', '.join(self.missing)})"
            return f"{self.name} is not configured"
        if self.closed:
            return f"{self.name} is unreachable: connection closed"
        if self.reason is None:
            return f"{self.name} is unreachable: connection not attempted"
        return f"{self.name} is unreachable: {REASON_MESSAGES[self.reason]}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"state": self.state.value, "message": self.message}
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.missing:
            data["missing"] = list(self.missing)
        return data


def iter_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """
    Yield ``exc`` and every exception reachable from it.

    Follows SQLAlchemy's ``orig`` attribute as well as ``__cause__`` and
    ``__context__``; driver errors are usually two or three levels deep.
    """
    seen = set()
    stack = [exc]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        for nxt in (getattr(current, "orig", None), current.__cause__, current.__context__):
            if isinstance(nxt, BaseException):
                stack.append(nxt)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped in PLACEHOLDER_VALUES
    return False


class DependencyHandle(ABC):
    """
    One external dependency and its connection state.

    Contract:
        - configure() never connects; it only validates settings
        - connect() performs exactly one attempt and never raises
        - is_ready() and status() are pure reads
        - a handle never touches another handle's state

    Subclasses set ``name`` and ``required_settings`` (Settings field names;
    reported to operators as upper-case environment variable names).
    """

    name: Dependency
    required_settings: Tuple[str, ...] = ()

    def __init__(self) -> None:
        self._settings = None
        self._state = DependencyState.UNCONFIGURED
        self._reason: Optional[FailureReason] = None
        self._failure: Optional[AiNoteError] = None
        self._missing: Tuple[str, ...] = tuple(f.upper() for f in self.required_settings)
        self.attempts = 0
        self._closed = False

    # ── Configuration ─────────────────────────────────────────────────────

    def configure(self, settings) -> ConfigResult:
        """
        Validate that every required setting is present.

        Returns:
            ConfigResult with ``ok=False`` and the missing environment
            variable names when anything is absent; the handle is then
            UNCONFIGURED and connect() will not attempt a connection.
        """
        missing = tuple(
            field.upper()
            for field in self.required_settings
            if _is_missing(getattr(settings, field, None))
        )
        self._settings = settings
        self._reason = None
        self.attempts = 0
        self._closed = False

        if missing:
            self._state = DependencyState.UNCONFIGURED
            self._missing = missing
            self._failure = ConfigurationMissingError(self.name.value, list(missing))
            logger.error("%s", self._failure.message)
            return ConfigResult(ok=False, missing=missing)

        self._state = DependencyState.UNREACHABLE
        self._missing = ()
        self._failure = None
        return ConfigResult(ok=True)

    # ── Connection ────────────────────────────────────────────────────────

    async def connect(self) -> DependencyState:
        """
        Perform one connection attempt.

        Failures are classified and captured as a DependencyUnreachableError
        on the handle; the caller only sees the resulting state.
        """
        if self._settings is None or self._state is DependencyState.UNCONFIGURED:
            return self._state
        if self._state is DependencyState.READY:
            return self._state

        self.attempts += 1
        timeout = self._settings.dependency_connect_timeout
        try:
            await asyncio.wait_for(self._open(), timeout=timeout)
        except Exception as exc:
            if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
                reason = FailureReason.ENDPOINT_UNREACHABLE
            else:
                reason = self.classify(exc)
            self._state = DependencyState.UNREACHABLE
            self._reason = reason
            self._failure = DependencyUnreachableError(
                self.name.value, reason.value, detail=f"{type(exc).__name__}: {exc}"
            )
            logger.error(
                "%s connection attempt %d failed: %s | %s | target=%s",
                self.name.value,
                self.attempts,
                REASON_MESSAGES[reason],
                self._failure.detail,
                self.describe_target(),
            )
            return self._state

        self._state = DependencyState.READY
        self._reason = None
        self._failure = None
        self._closed = False
        logger.info("%s connected | target=%s", self.name.value, self.describe_target())
        return self._state

    @abstractmethod
    async def _open(self) -> None:
        """Make one connection attempt; raise on failure."""
        ...

    @abstractmethod
    def classify(self, exc: BaseException) -> FailureReason:
        """Map a connection failure onto a FailureReason."""
        ...

    async def close(self) -> None:
        """
        Release the handle's resources at shutdown.

        A READY handle becomes UNREACHABLE ("connection closed"), so nothing
        is admitted against a connection that no longer exists.
        """
        try:
            await self._release()
        finally:
            if self._state is DependencyState.READY:
                self._state = DependencyState.UNREACHABLE
                self._closed = True

    async def _release(self) -> None:
        """Free driver resources. Default: nothing to release."""
        return None

    # ── Reads ─────────────────────────────────────────────────────────────

    def is_ready(self) -> bool:
        return self._state is DependencyState.READY

    @property
    def state(self) -> DependencyState:
        return self._state

    @property
    def reason(self) -> Optional[FailureReason]:
        return self._reason

    @property
    def failure(self) -> Optional[AiNoteError]:
        """The captured ConfigurationMissingError / DependencyUnreachableError."""
        return self._failure

    def status(self) -> DependencyStatus:
        return DependencyStatus(
            name=self.name.value,
            state=self._state,
            reason=self._reason,
            missing=self._missing if self._state is DependencyState.UNCONFIGURED else (),
            closed=self._closed,
        )

    def describe_target(self) -> Dict[str, Any]:
        """Non-secret connection parameters for log lines."""
        return {}
