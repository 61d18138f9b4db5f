"""
Test Suite: Email Delivery

Resend calls are patched; checks the request options and error mapping.
"""

from unittest.mock import MagicMock, patch

import pytest
import resend

from opensight.delivery.email import EmailDelivery

SUMMARY = {
    "domain": "example.com",
    "overall_score": 63,
    "total_mentions": 4,
    "total_prompts_checked": 6,
    "coverage": 1.0,
    "engine_scores": {"chatgpt": 70, "perplexity": None},
    "alerts": [{"type": "visibility_drop", "severity": "warning", "message": "Score fell <20%>"}],
}


class TestEmailDelivery:

    @pytest.mark.asyncio
    async def test_summary_carries_idempotency_key(self):
        send = MagicMock(return_value={"id": "em_1"})
        with patch.object(resend.Emails, "send", send):
            result = await EmailDelivery(api_key="re_test").send_analysis_summary(
                "owner@example.com", SUMMARY, idempotency_key="run-123",
            )

        assert result.success
        assert result.message_id == "em_1"
        params, options = send.call_args.args
        assert params["to"] == ["owner@example.com"]
        assert "example.com" in params["subject"]
        assert "Score fell &lt;20%&gt;" in params["html"]
        assert options == {"idempotency_key": "run-123"}

    @pytest.mark.asyncio
    async def test_no_key_no_options(self):
        send = MagicMock(return_value={"id": "em_2"})
        with patch.object(resend.Emails, "send", send):
            await EmailDelivery(api_key="re_test").send_error_notification(
                "owner@example.com", "example.com", "The analysis stopped while persisting",
            )

        params, options = send.call_args.args
        assert "Issue" in params["subject"]
        assert options is None

    @pytest.mark.asyncio
    async def test_provider_error_reported(self):
        send = MagicMock(side_effect=RuntimeError("rate limited"))
        with patch.object(resend.Emails, "send", send):
            result = await EmailDelivery(api_key="re_test").send_analysis_summary("owner@example.com", SUMMARY)

        assert not result.success
        assert "rate limited" in result.error

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        send = MagicMock()
        with patch.object(resend.Emails, "send", send):
            result = await EmailDelivery(api_key=None).send_analysis_summary("owner@example.com", SUMMARY)

        assert not result.success
        send.assert_not_called()
