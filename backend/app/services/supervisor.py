"""
AiNote Backend — Connection Supervisor
========================================

What:  Owns every DependencyHandle, brings them up at startup, and exposes
       aggregate readiness as a ReadinessSnapshot.
How:   bring_up() connects all configured handles concurrently. Each handle
       is tracked separately, so the store can be READY while the AI provider
       is UNCONFIGURED. snapshot() only reads handle state (no I/O).
Who:   Created by the application lifespan; passed to AdmissionGate and the
       status route through app.state.

Startup retry policy:
    A handle that ends UNREACHABLE with reason ENDPOINT_UNREACHABLE or OTHER
    is retried up to STARTUP_CONNECT_ATTEMPTS attempts in total, with
    exponential backoff and jitter between STARTUP_RETRY_MIN_WAIT and
    STARTUP_RETRY_MAX_WAIT seconds. AUTH_REJECTED and RESOURCE_ABSENT are not
    retried, and neither is UNCONFIGURED. When bring_up() returns, states are
    final until the process restarts: there is no reconnection loop.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.services.dependency_base import (
    ConfigResult,
    Dependency,
    DependencyHandle,
    DependencyState,
    DependencyStatus,
    FailureReason,
)

logger = logging.getLogger(__name__)

RETRYABLE_REASONS = frozenset({FailureReason.ENDPOINT_UNREACHABLE, FailureReason.OTHER})


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Point-in-time view of every dependency. Never persisted."""

    dependencies: Mapping[str, DependencyStatus]

    def __getitem__(self, name) -> DependencyStatus:
        key = name.value if isinstance(name, Dependency) else name
        return self.dependencies[key]

    @property
    def store(self) -> DependencyState:
        return self[Dependency.STORE].state

    @property
    def ai_provider(self) -> DependencyState:
        return self[Dependency.AI_PROVIDER].state

    @property
    def ready(self) -> bool:
        return all(status.ready for status in self.dependencies.values())

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: status.to_dict() for name, status in self.dependencies.items()}


class ConnectionSupervisor:
    """Registry and lifecycle owner for the service's external dependencies."""

    def __init__(self, handles: Iterable[DependencyHandle] = (), settings=None) -> None:
        self._handles: Dict[str, DependencyHandle] = {}
        self._settings = settings
        for handle in handles:
            self.register(handle)

    def register(self, handle: DependencyHandle) -> None:
        key = handle.name.value
        if key in self._handles:
            raise ValueError(f"dependency '{key}' is already registered")
        self._handles[key] = handle

    def handle(self, name) -> DependencyHandle:
        key = name.value if isinstance(name, Dependency) else name
        return self._handles[key]

    @property
    def handles(self) -> Mapping[str, DependencyHandle]:
        return dict(self._handles)

    def configure(self, settings) -> Dict[str, ConfigResult]:
        """Validate settings for every handle. Never connects."""
        self._settings = settings
        return {key: handle.configure(settings) for key, handle in self._handles.items()}

    async def bring_up(self) -> ReadinessSnapshot:
        """
        Connect every handle concurrently and return the resulting snapshot.

        Handles share no mutable state, so their attempts (and retries) run
        independently. Never raises because a dependency is down.
        """
        if self._settings is None:
            raise RuntimeError("configure() must be called before bring_up()")

        await asyncio.gather(*(self._bring_up_one(h) for h in self._handles.values()))

        snapshot = self.snapshot()
        for name, status in snapshot.dependencies.items():
            log = logger.info if status.ready else logger.warning
            log("Dependency %-12s %s", name, status.message)
        return snapshot

    async def _bring_up_one(self, handle: DependencyHandle) -> DependencyState:
        if handle.state is DependencyState.UNCONFIGURED:
            return handle.state

        s = self._settings

        def should_retry(state: DependencyState) -> bool:
            return state is DependencyState.UNREACHABLE and handle.reason in RETRYABLE_REASONS

        retrying = AsyncRetrying(
            stop=stop_after_attempt(s.startup_connect_attempts),
            wait=wait_exponential_jitter(
                initial=s.startup_retry_min_wait,
                max=s.startup_retry_max_wait,
                jitter=1,
            ),
            retry=retry_if_result(should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            # Out of attempts: keep the last state instead of raising RetryError
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        return await retrying(handle.connect)

    def snapshot(self) -> ReadinessSnapshot:
        """Read every handle's status. Cheap; performs no I/O."""
        return ReadinessSnapshot(
            dependencies={key: handle.status() for key, handle in self._handles.items()}
        )

    def status_of(self, name) -> Optional[DependencyStatus]:
        key = name.value if isinstance(name, Dependency) else name
        handle = self._handles.get(key)
        return handle.status() if handle is not None else None

    async def shutdown(self) -> None:
        """Close every handle; errors are logged so every handle gets closed."""
        for key, handle in self._handles.items():
            try:
                await handle.close()
            except Exception:
                logger.error("Error while closing %s", key, exc_info=True)
