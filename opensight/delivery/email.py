"""
Email Delivery Module

Sends analysis summaries via Resend email service.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Any, Dict, Optional

import resend

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    """Result of email delivery."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message_id": self.message_id, "error": self.error}


class EmailDelivery:
    """
    Notification collaborator using Resend.

    Handles:
    - Analysis summary emails (run completed)
    - Error notifications (run failed)
    """

    DEFAULT_FROM_EMAIL = "reports@opensight.dev"
    DEFAULT_FROM_NAME = "OpenSight"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
    ):
        """
        Initialize email delivery.

        Args:
            api_key: Resend API key
            from_email: Sender email address
        """
        self.api_key = api_key
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set - email delivery disabled")

        self.from_email = from_email or self.DEFAULT_FROM_EMAIL

        if self.api_key:
            resend.api_key = self.api_key

    async def send_analysis_summary(
        self,
        to_email: str,
        summary: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> EmailResult:
        """
        Send the summary of a completed run.

        Args:
            to_email: Requester email
            summary: Run summary (domain, overall_score, mentions, coverage, alerts, ...)
            idempotency_key: Sent as Resend's Idempotency-Key; a repeated send
                             with the same key is not delivered again

        Returns:
            EmailResult indicating success/failure
        """
        if not self.api_key:
            return EmailResult(success=False, error="Email delivery not configured (missing API key)")

        domain = summary.get("domain", "")
        params = {
            "from": f"{self.DEFAULT_FROM_NAME} <{self.from_email}>",
            "to": [to_email],
            "subject": f"Your AI visibility analysis for {domain} is ready",
            "html": self._get_summary_email_html(summary),
        }
        return await self._send(params, to_email, idempotency_key)

    async def send_error_notification(
        self,
        to_email: str,
        domain: str,
        error_message: str,
        idempotency_key: Optional[str] = None,
    ) -> EmailResult:
        """Tell the requester a run could not be completed."""
        if not self.api_key:
            return EmailResult(success=False, error="Email not configured")

        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Analysis Issue</h2>
            <p>We encountered an issue while analyzing <strong>{escape(domain)}</strong>.</p>
            <p style="color: #666;">{escape(error_message)}</p>
            <p>You can submit the domain again at any time.</p>
        </body>
        </html>
        """
        params = {
            "from": f"{self.DEFAULT_FROM_NAME} <{self.from_email}>",
            "to": [to_email],
            "subject": f"Issue with your AI visibility analysis for {domain}",
            "html": html_content,
        }
        return await self._send(params, to_email, idempotency_key)

    async def _send(
        self,
        params: Dict[str, Any],
        to_email: str,
        idempotency_key: Optional[str] = None,
    ) -> EmailResult:
        options = {"idempotency_key": idempotency_key} if idempotency_key else None
        try:
            # resend's client is synchronous
            response = await asyncio.to_thread(resend.Emails.send, params, options)
        except Exception as e:
            logger.error(f"Email delivery failed: {e}")
            return EmailResult(success=False, error=str(e))

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {to_email}: {message_id or 'unknown'}")
        return EmailResult(success=True, message_id=message_id)

    def _get_summary_email_html(self, summary: Dict[str, Any]) -> str:
        """Generate HTML for the analysis summary email."""
        domain = escape(str(summary.get("domain", "")))
        overall = summary.get("overall_score")
        overall_text = "n/a" if overall is None else f"{overall}"
        coverage = summary.get("coverage", 1.0) or 0.0

        alert_items = "".join(
            f"<li><strong>{escape(str(a.get('severity', 'info')).upper())}</strong> {escape(str(a.get('message', '')))}</li>"
            for a in summary.get("alerts", [])
        )
        alerts_html = f"<h3>Alerts</h3><ul>{alert_items}</ul>" if alert_items else ""

        engine_rows = "".join(
            f"<tr><td>{escape(str(engine))}</td><td>{'n/a' if score is None else score}</td></tr>"
            for engine, score in (summary.get("engine_scores") or {}).items()
        )

        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto;">
                <h1>AI Visibility for {domain}</h1>
                <p>Overall score: <strong>{overall_text}</strong></p>
                <p>Mentioned in {summary.get('total_mentions', 0)} of {summary.get('total_prompts_checked', 0)} answers
                   ({coverage * 100:.0f}% of checks completed)</p>
                <table>{engine_rows}</table>
                {alerts_html}
                <p style="font-size: 12px; color: #666;">&copy; {datetime.now().year} OpenSight</p>
            </div>
        </body>
        </html>
        """
