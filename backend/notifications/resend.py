"""
Minimal Resend client (transactional e-mail over HTTPS).

Design:
    - Framework-agnostic; callers decide how to handle `EmailDeliveryError`.
    - Uses httpx with a short timeout; no retries (e-mails are best effort and
      every attempt is recorded in `email_logs`).

Security:
    The API key is read from the environment and never logged.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import os

import httpx


RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM = "Hope Institute <noreply@example.com>"


class EmailDeliveryError(Exception):
    def __init__(self, code: str, response: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code)
        self.code = code
        self.response = response


@dataclass(frozen=True)
class ResendConfig:
    api_key: str
    from_email: str
    fallback_to: str
    api_url: str = RESEND_API_URL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


def load_resend_config() -> ResendConfig:
    return ResendConfig(
        api_key=(os.getenv("RESEND_API_KEY") or "").strip(),
        from_email=(os.getenv("RESEND_FROM_EMAIL") or DEFAULT_FROM).strip(),
        fallback_to=(os.getenv("RESEND_TO_EMAIL") or "").strip(),
    )


class ResendClient:
    def __init__(self, cfg: ResendConfig, *, timeout: float = 10.0) -> None:
        self.cfg = cfg
        self.timeout = timeout

    def send(
        self,
        *,
        to: Sequence[str],
        subject: str,
        html: str,
        text: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> str:
        """Send one e-mail and return the provider's message id."""
        payload: Dict[str, Any] = {
            "from": self.cfg.from_email,
            "to": list(to),
            "subject": subject,
            "html": html,
        }
        if text:
            payload["text"] = text
        if reply_to:
            payload["reply_to"] = reply_to
        headers = {"Authorization": f"Bearer {self.cfg.api_key}", "Content-Type": "application/json"}
        try:
            resp = httpx.post(self.cfg.api_url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError("resend_unreachable") from exc
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400:
            raise EmailDeliveryError("resend_rejected", body if isinstance(body, dict) else None)
        email_id = body.get("id") if isinstance(body, dict) else None
        if not email_id:
            raise EmailDeliveryError("resend_invalid_response", body if isinstance(body, dict) else None)
        return str(email_id)


def recipients(values: Sequence[str] | str) -> List[str]:
    if isinstance(values, str):
        values = [values]
    return [v.strip() for v in values if v and v.strip()]
