"""Sentry SDK integration for covmap.

Error monitoring is strictly opt-in: nothing is sent unless
``sentry.enabled: true`` is set in ``.covmap.yml`` or
``COVMAP_SENTRY_ENABLED=true`` is exported.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from covmap import __version__
from covmap.utils.ci_context import detect_ci_context

if TYPE_CHECKING:
    from types import TracebackType

    from covmap.config import SentryConfig

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()
_initialized: dict[str, bool] = {"value": False}

_SENSITIVE_PATTERN = re.compile(
    r"(password|secret|token|dsn|authorization|cookie)\s*[:=]\s*\S+",
    re.IGNORECASE,
)

_PATH_HOME_RE = re.compile(r"/(?:home|Users)/[^/]+")

_SENSITIVE_KEYS = frozenset({"password", "secret", "token", "dsn", "authorization", "cookie"})


def init_sentry(config: SentryConfig) -> bool:
    """Initialize the Sentry SDK if enabled and configured.

    Idempotent and thread-safe.

    Returns:
        True if Sentry is active after the call.
    """
    with _init_lock:
        if _initialized["value"]:
            return True
        if not config.enabled:
            logger.debug("Sentry disabled (sentry.enabled is false)")
            return False
        if not config.dsn:
            logger.warning("Sentry enabled but no DSN configured")
            return False

        environment = config.environment or ("ci" if detect_ci_context().is_ci else "local")
        sentry_sdk.init(
            dsn=config.dsn,
            release=f"covmap@{__version__}",
            environment=environment,
            traces_sample_rate=config.traces_sample_rate,
            send_default_pii=False,
            server_name="",
            before_send=_before_send,
            in_app_include=["covmap"],
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        )

        _initialized["value"] = True
        logger.info(
            "Sentry initialized (env=%s, tracing=%.2f)",
            environment,
            config.traces_sample_rate,
        )
        return True


def is_sentry_enabled() -> bool:
    """Return whether Sentry has been successfully initialized."""
    return _initialized["value"]


# ── Privacy scrubbing ──────────────────────────────────────────────


def _scrub_path(path: str) -> str:
    return _PATH_HOME_RE.sub("/~", path)


def _scrub_string(value: str) -> str:
    return _SENSITIVE_PATTERN.sub("[REDACTED]", value)


def _scrub_dict(data: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in _SENSITIVE_KEYS:
            result[key] = "[REDACTED]"
        elif isinstance(value, str):
            result[key] = _scrub_string(value)
        elif isinstance(value, dict):
            result[key] = _scrub_dict(value)
        else:
            result[key] = value
    return result


def scrub_event(event: dict[str, Any]) -> dict[str, Any]:
    """Strip local variables, home directories and secrets from an event."""
    exception = event.get("exception")
    if isinstance(exception, dict):
        for value in exception.get("values", []):
            stacktrace = value.get("stacktrace")
            if not isinstance(stacktrace, dict):
                continue
            for frame in stacktrace.get("frames", []):
                frame.pop("vars", None)
                for key in ("filename", "abs_path"):
                    if isinstance(frame.get(key), str):
                        frame[key] = _scrub_path(frame[key])

    for key in ("tags", "extra"):
        if isinstance(event.get(key), dict):
            event[key] = _scrub_dict(event[key])

    event.pop("server_name", None)
    return event


def _before_send(event: dict[str, Any], _hint: dict[str, Any]) -> dict[str, Any] | None:
    return scrub_event(event)


# ── Tracing helpers ────────────────────────────────────────────────


class _NoOpSpan:
    """Context manager that does nothing when Sentry is disabled."""

    def __enter__(self) -> _NoOpSpan:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        pass

    def set_data(self, key: str, value: Any) -> None:
        """No-op data setter."""


def start_span(op: str, name: str) -> Any:
    """Start a Sentry span, or a no-op context manager when Sentry is disabled."""
    if not _initialized["value"]:
        return _NoOpSpan()
    return sentry_sdk.start_span(op=op, name=name)
