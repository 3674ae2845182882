"""Tests for settings loading, redaction helpers, logging and retry helpers."""

from __future__ import annotations

import io
import json
import logging
import os
from unittest.mock import patch

import pytest

from promptteams.core.errors import ConflictRetryExhausted, NotFound, StoreUnavailable, VersionConflict
from promptteams.core.log_setup import configure_logging
from promptteams.core.retry import backoff_delay, cas_loop, retry_unavailable
from promptteams.core.secrets import REDACTED, mask_email, redact_text, safe_log_json
from promptteams.core.settings import ConfigError, Settings, load_settings
from promptteams.tests.helpers import run_async


class TestSettings:
    def test_defaults(self) -> None:
        settings = load_settings()
        assert settings.conflict_max_attempts == 5
        assert settings.log_format == "text"
        assert settings.validate() == []

    def test_env_overrides(self) -> None:
        env = {
            "PROMPTTEAMS_CONFLICT_MAX_ATTEMPTS": "8",
            "PROMPTTEAMS_LOG_FORMAT": "json",
            "PROMPTTEAMS_MAILER_TIMEOUT_S": "2.5",
        }
        with patch.dict(os.environ, env):
            settings = load_settings()
        assert settings.conflict_max_attempts == 8
        assert settings.log_format == "json"
        assert settings.mailer_timeout_s == 2.5

    def test_unparseable_number_falls_back(self) -> None:
        with patch.dict(os.environ, {"PROMPTTEAMS_RETRY_ATTEMPTS": "lots"}):
            assert load_settings().retry_attempts == 3

    def test_yaml_between_defaults_and_env(self, tmp_path) -> None:
        path = tmp_path / "promptteams.yaml"
        path.write_text("retry_attempts: 7\nenv: staging\n")
        with patch.dict(os.environ, {"PROMPTTEAMS_ENV": "prod"}):
            settings = load_settings(str(path))
        assert settings.retry_attempts == 7
        assert settings.env == "prod"

    def test_yaml_unknown_key(self, tmp_path) -> None:
        path = tmp_path / "promptteams.yaml"
        path.write_text("retry_attemps: 7\n")
        with pytest.raises(ConfigError, match="retry_attemps"):
            load_settings(str(path))

    def test_overrides_win(self) -> None:
        with patch.dict(os.environ, {"PROMPTTEAMS_RETRY_ATTEMPTS": "9"}):
            settings = load_settings(retry_attempts=1)
        assert settings.retry_attempts == 1

    def test_secret_masked(self) -> None:
        settings = Settings(mailer_api_key="sk-live-123")
        assert "sk-live-123" not in repr(settings)
        assert settings.to_dict()["mailer_api_key"] == "configured"

    def test_validate_collects_errors(self) -> None:
        errors = Settings(log_format="xml", conflict_max_attempts=0, mailer_endpoint="ftp://x").validate()
        assert len(errors) == 3


class TestRedaction:
    def test_mask_email(self) -> None:
        assert mask_email("alice@example.com") == "a***@example.com"

    def test_redact_text(self) -> None:
        out = redact_text("Authorization: Bearer abc.def for bob@acme.test")
        assert "abc.def" not in out
        assert "b***@acme.test" in out

    def test_safe_log_json_drops_content(self) -> None:
        out = safe_log_json({"text": "secret prompt", "api_key": "k", "prompt_id": "p1"})
        assert "text" not in out
        assert out["api_key"] == REDACTED
        assert out["prompt_id"] == "p1"


class TestLogging:
    def test_json_lines(self) -> None:
        stream = io.StringIO()
        configure_logging(Settings(log_format="json", log_level="DEBUG"), stream=stream)
        logging.getLogger("promptteams.test").info(
            "invited carol@acme.test", extra={"event": {"team_id": "t1", "body": "hidden"}}
        )
        record = json.loads(stream.getvalue().strip())
        assert record["logger"] == "promptteams.test"
        assert record["message"] == "invited c***@acme.test"
        assert record["team_id"] == "t1"
        assert "body" not in record

    def test_reconfigure_replaces_handler(self) -> None:
        first, second = io.StringIO(), io.StringIO()
        configure_logging(Settings(), stream=first)
        logger = configure_logging(Settings(log_level="WARNING"), stream=second)
        logging.getLogger("promptteams.test").warning("once")
        assert first.getvalue() == ""
        assert "once" in second.getvalue()
        assert len(logger.handlers) == 1

    def test_services_emit_structured_events(self, pt) -> None:
        from promptteams.tests.helpers import BOB, make_team

        stream = io.StringIO()
        configure_logging(Settings(log_format="json", log_level="INFO"), stream=stream)

        async def scenario():
            team = await make_team(pt)
            result = await pt.create_invitation(team.id, BOB.email)
            await pt.sign_in(BOB)
            await pt.accept_invitation(result.invitation.id)
            return team, result.invitation.id

        team, invitation_id = run_async(scenario())
        records = [json.loads(line) for line in stream.getvalue().splitlines()]
        events = {r["event"]: r for r in records if "event" in r}
        assert events["invitation_created"]["invitation_id"] == invitation_id
        assert events["invitation_created"]["team_id"] == team.id
        assert events["invitation_accepted"]["joined"] is True
        assert "bob@acme.test" not in stream.getvalue()


class TestRetryHelpers:
    def test_backoff_without_jitter(self) -> None:
        assert backoff_delay(0, 0.1, jitter=False) == 0.1
        assert backoff_delay(3, 0.1, jitter=False) == pytest.approx(0.8)
        assert 0 <= backoff_delay(3, 0.1) <= 0.8

    def test_retry_unavailable_recovers(self) -> None:
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StoreUnavailable("down")
            return "ok"

        assert run_async(retry_unavailable(flaky, attempts=3, backoff_base=0.0)) == "ok"
        assert len(calls) == 3

    def test_retry_unavailable_gives_up(self) -> None:
        async def down():
            raise StoreUnavailable("down")

        with pytest.raises(StoreUnavailable):
            run_async(retry_unavailable(down, attempts=2, backoff_base=0.0))

    def test_other_errors_not_retried(self) -> None:
        calls = []

        async def missing():
            calls.append(1)
            raise NotFound("nope")

        with pytest.raises(NotFound):
            run_async(retry_unavailable(missing, attempts=5, backoff_base=0.0))
        assert len(calls) == 1

    def test_cas_loop_exhausts(self) -> None:
        async def always_conflict():
            raise VersionConflict("c/d", 1, 2)

        with pytest.raises(ConflictRetryExhausted) as exc_info:
            run_async(cas_loop(always_conflict, max_attempts=3, backoff_base=0.0))
        assert exc_info.value.attempts == 3
