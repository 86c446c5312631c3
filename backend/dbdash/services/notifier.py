"""
通知分发服务模块。

负责将告警通知发送到已配置的渠道：日志（总是）、邮件、Webhook。
任何渠道发送失败只记录日志，不会抛出异常，邮件服务器配置错误不能中断采集循环。
"""
import hashlib
import hmac
import json
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib
import httpx

from dbdash.core.config import Settings
from dbdash.schemas.alert import AlertCandidate

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Dashboard-Signature"


def _alert_body(candidate: AlertCandidate) -> str:
    """告警通知正文。"""
    lines = [
        f"Severity: {candidate.severity.value}",
        f"Type: {candidate.kind}",
        f"Message: {candidate.message}",
    ]
    if candidate.details:
        lines.append("Details:")
        lines.append(json.dumps(candidate.details, indent=2, ensure_ascii=False, default=str))
    return "\n".join(lines)


def _webhook_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 签名（hex）。"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class Notifier:
    """告警通知器，按配置扇出到各渠道。"""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self._transport = transport

    async def notify(self, candidate: AlertCandidate) -> None:
        logger.warning(candidate.summary())

        if self.settings.email_enabled:
            try:
                await self._send_email(candidate)
            except Exception:
                logger.exception("Failed to send email notification for %s", candidate.identity_key)

        if self.settings.webhook_enabled and candidate.severity.value in self.settings.webhook_severity_list:
            try:
                await self._send_webhook(candidate)
            except Exception:
                logger.exception("Failed to send webhook notification for %s", candidate.identity_key)

    async def _send_email(self, candidate: AlertCandidate) -> None:
        s = self.settings
        recipients = s.recipients
        if not recipients:
            return
        msg = MIMEMultipart("alternative")
        msg["From"] = s.email_from
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"[{candidate.severity.value}] {s.app_name}: {candidate.kind}"
        msg.attach(MIMEText(_alert_body(candidate), "plain", "utf-8"))
        kwargs = {"hostname": s.smtp_host, "port": s.smtp_port, "username": s.smtp_user, "password": s.smtp_password}
        if s.smtp_ssl:
            kwargs["use_tls"] = True
        else:
            kwargs["start_tls"] = True
        await aiosmtplib.send(msg, **kwargs)

    async def _send_webhook(self, candidate: AlertCandidate) -> None:
        url = self.settings.webhook_url
        if not url:
            return
        payload = {
            "type": candidate.kind,
            "severity": candidate.severity.value,
            "message": candidate.message,
            "details": candidate.details,
            "identity_key": candidate.identity_key,
        }
        body = json.dumps(payload, ensure_ascii=False, default=str).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.settings.webhook_secret:
            headers[SIGNATURE_HEADER] = _webhook_signature(self.settings.webhook_secret, body)
        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            resp = await client.post(url, content=body, headers=headers)
            resp.raise_for_status()
