"""Telemetry integrations for covmap."""

from covmap.telemetry.sentry_integration import init_sentry, is_sentry_enabled, start_span

__all__ = ["init_sentry", "is_sentry_enabled", "start_span"]
