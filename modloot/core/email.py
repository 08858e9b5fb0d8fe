"""
Outbound email via the Resend REST API.

EmailClient is built once in the app lifespan and handed to handlers through
the get_email_client dependency. send() never raises: transport and provider
errors come back as EmailResult(success=False, error=...).
"""

import html
import re
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger()

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    template: str


class EmailClient:
    def __init__(
        self,
        api_key: str,
        from_address: str,
        sender_name: str = "",
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 10.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = f"{sender_name} <{from_address}>" if sender_name else from_address
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, message: EmailMessage) -> EmailResult:
        if not to or not message.subject or not message.html:
            return EmailResult(success=False, error="Missing required email parameters")
        if not self.configured:
            logger.warning("email_not_configured", to=to, template=message.template)
            return EmailResult(success=False, error="Email provider not configured")

        payload = {
            "from": self.sender,
            "to": [to],
            "subject": message.subject,
            "html": message.html,
            "text": _TAG_RE.sub("", message.html),
        }
        try:
            resp = await self._http.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        except httpx.HTTPError as e:
            logger.error("email_send_failed", to=to, template=message.template, error=str(e))
            return EmailResult(success=False, error=str(e))

        if resp.status_code >= 400:
            logger.error("email_send_rejected", to=to, template=message.template,
                         status=resp.status_code, body=resp.text[:500])
            return EmailResult(success=False, error=f"Provider returned {resp.status_code}")

        try:
            body = resp.json()
        except ValueError:
            body = None
        message_id = body.get("id") if isinstance(body, dict) else None
        logger.info("email_sent", to=to, template=message.template, message_id=message_id)
        return EmailResult(success=True, message_id=message_id)

    async def aclose(self):
        await self._http.aclose()


def task_completed_email(offer: str, title: Optional[str], code: Optional[str]) -> EmailMessage:
    """Reward email sent when a CPA network confirms a pending completion."""
    offer_html = html.escape(offer)
    title_html = html.escape(title or "Task Completed")
    code_block = ""
    if code:
        code_block = f"""
        <div style="background-color:#ffffff;border-radius:12px;padding:20px;margin-top:20px;">
          <p style="color:#6c757d;font-size:14px;font-weight:600;margin:0 0 10px;text-align:center;text-transform:uppercase;">Your Coupon Code</p>
          <div style="background-color:#f8f9fa;border:2px dashed #10b981;border-radius:8px;padding:15px;text-align:center;">
            <code style="color:#065f46;font-size:24px;font-weight:bold;letter-spacing:2px;font-family:'Courier New',monospace;">{html.escape(code)}</code>
          </div>
        </div>"""

    body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Task Completed Successfully</title></head>
<body style="margin:0;padding:0;background-color:#f4f4f4;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color:#f4f4f4;padding:20px;">
    <tr><td align="center">
      <table width="600" cellpadding="0" cellspacing="0" style="background-color:#ffffff;border-radius:8px;">
        <tr><td style="padding:40px 30px 20px;text-align:center;">
          <h1 style="color:#10b981;margin:0;font-size:28px;">Congratulations!</h1>
          <p style="color:#495057;font-size:16px;margin:10px 0 0;">You've successfully completed your task and earned your reward!</p>
        </td></tr>
        <tr><td style="padding:30px;">
          <div style="border:3px dashed #10b981;border-radius:16px;padding:30px;">
            <h3 style="color:#065f46;font-size:32px;margin:0 0 10px;text-align:center;">{offer_html}</h3>
            <p style="color:#047857;font-size:18px;font-weight:600;margin:0 0 25px;text-align:center;">{title_html}</p>{code_block}
          </div>
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""

    return EmailMessage(
        subject=f"\U0001F389 Task Completed - Your {offer} is Ready!",
        html=body,
        template="taskCompleted",
    )
