"""Tests for Sentry integration."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from covmap.config import SentryConfig
from covmap.telemetry import sentry_integration


@pytest.fixture(autouse=True)
def _reset_sentry_state() -> Generator[None]:
    """Reset Sentry singleton state between tests."""
    sentry_integration._initialized["value"] = False
    yield
    sentry_integration._initialized["value"] = False


# ---------------------------------------------------------------------------
# init_sentry
# ---------------------------------------------------------------------------


def test_init_sentry_disabled_does_not_call_sdk() -> None:
    config = SentryConfig(enabled=False, dsn="https://key@sentry.io/123")

    with patch.object(sentry_integration, "sentry_sdk") as mock_sdk:
        assert not sentry_integration.init_sentry(config)

    mock_sdk.init.assert_not_called()
    assert not sentry_integration.is_sentry_enabled()


def test_init_sentry_enabled_no_dsn_warns(caplog: pytest.LogCaptureFixture) -> None:
    config = SentryConfig(enabled=True, dsn="")
    sentry_integration.init_sentry(config)

    assert not sentry_integration.is_sentry_enabled()
    assert "no DSN configured" in caplog.text


def test_init_sentry_valid_config_calls_sdk() -> None:
    config = SentryConfig(
        enabled=True,
        dsn="https://key@sentry.io/123",
        traces_sample_rate=0.5,
        environment="test",
    )

    with patch.object(sentry_integration, "sentry_sdk") as mock_sdk:
        assert sentry_integration.init_sentry(config)

    assert sentry_integration.is_sentry_enabled()
    mock_sdk.init.assert_called_once()

    call_kwargs = mock_sdk.init.call_args[1]
    assert call_kwargs["dsn"] == "https://key@sentry.io/123"
    assert call_kwargs["traces_sample_rate"] == 0.5
    assert call_kwargs["send_default_pii"] is False
    assert call_kwargs["server_name"] == ""
    assert call_kwargs["environment"] == "test"
    assert call_kwargs["release"].startswith("covmap@")
    assert call_kwargs["before_send"] is sentry_integration._before_send


def test_init_sentry_is_idempotent() -> None:
    config = SentryConfig(enabled=True, dsn="https://key@sentry.io/123")

    with (
        patch.object(sentry_integration, "sentry_sdk") as mock_sdk,
        patch.object(sentry_integration, "detect_ci_context") as mock_ci,
    ):
        mock_ci.return_value = MagicMock(is_ci=False)
        sentry_integration.init_sentry(config)
        sentry_integration.init_sentry(config)

    assert mock_sdk.init.call_count == 1


@pytest.mark.parametrize(("is_ci", "expected"), [(True, "ci"), (False, "local")])
def test_init_sentry_environment_detection(*, is_ci: bool, expected: str) -> None:
    config = SentryConfig(enabled=True, dsn="https://key@sentry.io/123")

    with (
        patch.object(sentry_integration, "sentry_sdk") as mock_sdk,
        patch.object(sentry_integration, "detect_ci_context") as mock_ci,
    ):
        mock_ci.return_value = MagicMock(is_ci=is_ci)
        sentry_integration.init_sentry(config)

    assert mock_sdk.init.call_args[1]["environment"] == expected


# ---------------------------------------------------------------------------
# Privacy scrubbing
# ---------------------------------------------------------------------------


def test_scrub_event_removes_frame_vars() -> None:
    event: dict[str, Any] = {
        "exception": {
            "values": [
                {
                    "stacktrace": {
                        "frames": [
                            {
                                "filename": "covmap/cli.py",
                                "vars": {"token": "ghp_secret123", "x": 42},
                            }
                        ]
                    }
                }
            ]
        }
    }
    scrubbed = sentry_integration.scrub_event(event)
    frame = scrubbed["exception"]["values"][0]["stacktrace"]["frames"][0]
    assert "vars" not in frame


def test_scrub_event_anonymizes_paths() -> None:
    event: dict[str, Any] = {
        "exception": {
            "values": [
                {
                    "stacktrace": {
                        "frames": [
                            {
                                "filename": "/Users/john/projects/app/cli.py",
                                "abs_path": "/home/jane/app/cli.py",
                            }
                        ]
                    }
                }
            ]
        }
    }
    scrubbed = sentry_integration.scrub_event(event)
    frame = scrubbed["exception"]["values"][0]["stacktrace"]["frames"][0]
    assert frame["filename"] == "/~/projects/app/cli.py"
    assert frame["abs_path"] == "/~/app/cli.py"


def test_scrub_event_removes_server_name() -> None:
    event: dict[str, Any] = {"server_name": "my-macbook.local", "tags": {}}
    scrubbed = sentry_integration.scrub_event(event)
    assert "server_name" not in scrubbed


def test_scrub_event_redacts_tags_and_extra() -> None:
    event: dict[str, Any] = {
        "tags": {"token": "ghp_abc", "mode": "baseline"},
        "extra": {"note": "dsn=https://key@sentry.io/1", "nested": {"password": "x"}},
    }

    scrubbed = sentry_integration.scrub_event(event)

    assert scrubbed["tags"] == {"token": "[REDACTED]", "mode": "baseline"}
    assert scrubbed["extra"]["note"] == "[REDACTED]"
    assert scrubbed["extra"]["nested"] == {"password": "[REDACTED]"}


def test_before_send_preserves_structure() -> None:
    event: dict[str, Any] = {"message": "boom", "level": "error"}

    assert sentry_integration._before_send(event, {}) == {"message": "boom", "level": "error"}


# ---------------------------------------------------------------------------
# Tracing helpers
# ---------------------------------------------------------------------------


def test_start_span_returns_noop_when_disabled() -> None:
    span = sentry_integration.start_span("covmap.parse", "Parse LCOV report")
    assert isinstance(span, sentry_integration._NoOpSpan)


def test_noop_span_context_manager() -> None:
    with sentry_integration._NoOpSpan() as span:
        span.set_data("files", 3)


def test_start_span_calls_sdk_when_enabled() -> None:
    sentry_integration._initialized["value"] = True

    with patch.object(sentry_integration, "sentry_sdk") as mock_sdk:
        sentry_integration.start_span("covmap.analyze", "Analyze changed-file coverage")

    mock_sdk.start_span.assert_called_once_with(
        op="covmap.analyze", name="Analyze changed-file coverage"
    )
