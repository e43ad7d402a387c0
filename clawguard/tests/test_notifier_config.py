"""
Tests for webhook notifications and runtime configuration.
"""

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from clawguard.config.settings import GuardConfig
from clawguard.service.notifier import WebhookNotifier, build_notifier


class TestWebhookNotifier:
    @pytest.mark.asyncio
    async def test_posts_new_requests(self, approvals):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200)

        notifier = WebhookNotifier(
            "http://bot.local/notify", transport=httpx.MockTransport(handler)
        )
        approvals.register_callback(notifier.on_approval_event)

        request_id = approvals.request_approval(
            tool="Bash", input="git push origin main", session="s1", requester="cc"
        )
        approvals.decide(request_id, "allow")
        for _ in range(50):
            if received:
                break
            await asyncio.sleep(0.01)

        assert len(received) == 1
        assert received[0]["request"]["id"] == request_id
        assert f"/allow {request_id}" in received[0]["text"]

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, approvals, caplog):
        def handler(request):
            return httpx.Response(502)

        notifier = WebhookNotifier(
            "http://bot.local/notify", transport=httpx.MockTransport(handler)
        )
        request_id = approvals.request_approval(
            tool="Bash", input="ls", session="s1", requester="cc"
        )

        await notifier.send(approvals.get(request_id))

        assert "Failed to send approval notification" in caplog.text

    def test_without_event_loop_is_skipped(self, approvals):
        notifier = WebhookNotifier("http://bot.local/notify")
        approvals.register_callback(notifier.on_approval_event)

        request_id = approvals.request_approval(
            tool="Bash", input="ls", session="s1", requester="cc"
        )

        assert approvals.get(request_id) is not None

    def test_build_notifier(self):
        assert build_notifier(None) is None
        assert build_notifier("") is None
        assert build_notifier("http://x").url == "http://x"


class TestGuardConfig:
    def test_defaults(self, tmp_path):
        config = GuardConfig(state_dir=tmp_path)

        assert config.port == 3344
        assert config.db_path == tmp_path / "clawguard.db"
        assert config.policy_file == tmp_path / "policies.yaml"
        assert config.base_url == "http://127.0.0.1:3344"

    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAWGUARD_STATE_DIR", str(tmp_path))
        monkeypatch.setenv("CLAWGUARD_PORT", "4455")
        monkeypatch.setenv("CLAWGUARD_APPROVAL_TIMEOUT", "60")
        monkeypatch.setenv("CLAWGUARD_ALLOWED_USERS", "owner, admin ,")
        monkeypatch.setenv("CLAWGUARD_LOG_LEVEL", "debug")
        monkeypatch.delenv("CLAWGUARD_CONFIG", raising=False)

        config = GuardConfig.from_env()

        assert config.state_dir == tmp_path
        assert config.port == 4455
        assert config.approval_timeout_seconds == 60.0
        assert config.allowed_users == ["owner", "admin"]
        assert config.log_level == "DEBUG"

    def test_json_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CLAWGUARD_STATE_DIR", str(tmp_path))
        monkeypatch.setenv(
            "CLAWGUARD_CONFIG",
            json.dumps({"port": 9999, "policy_file": "/etc/clawguard.yaml", "bogus": 1}),
        )

        config = GuardConfig.from_env()

        assert config.port == 9999
        assert config.policy_file == Path("/etc/clawguard.yaml")

    def test_bad_number_rejected(self, monkeypatch):
        monkeypatch.setenv("CLAWGUARD_PORT", "not-a-port")
        with pytest.raises(ValueError):
            GuardConfig.from_env()
