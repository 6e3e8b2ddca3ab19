# orderflow/services/gateways.py
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class SendResult(BaseModel):
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None


def clean_phone(contact: str) -> str:
    return re.sub(r"\D", "", contact or "")


def _parse_provider_reply(text: str) -> SendResult:
    if not text or not text.strip():
        return SendResult(success=False, error="Empty response from SMS provider")
    try:
        body = json.loads(text)
    except ValueError:
        if re.search(r"success", text, re.IGNORECASE):
            return SendResult(success=True, message="sent (text response)")
        return SendResult(success=False, error="Invalid response from SMS provider")
    if isinstance(body, dict) and (body.get("return") or body.get("success")):
        return SendResult(success=True, message="sent")
    err = body.get("message") if isinstance(body, dict) else None
    if isinstance(err, list):
        err = "; ".join(str(e) for e in err)
    return SendResult(success=False, error=err or "SMS provider error")


class SmsGateway:
    """
    HTTP SMS provider client. Outside production, or without an API key,
    messages are only logged and reported as sent.
    """

    def __init__(self, api_url: str, api_key: str = "", live: bool = False,
                 timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = api_url
        self.api_key = api_key
        self.live = live and bool(api_key)
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    async def _call(self, params: Dict[str, Any]) -> SendResult:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.get(self.api_url, params=params)
        return _parse_provider_reply(r.text)

    async def send(self, contact: str, message: str) -> SendResult:
        if not self.live:
            logger.info("[DEV] SMS to %s: %s", contact, message)
            return SendResult(success=True, message="sent (dev mode)")
        number = clean_phone(contact)
        if not number:
            return SendResult(success=False, error="No phone number")
        try:
            return await self._call({
                "authorization": self.api_key,
                "route": "q",
                "numbers": number,
                "message": message,
            })
        except httpx.HTTPError as exc:
            logger.warning("SMS to %s failed: %s", number, exc)
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)

    async def send_otp(self, contact: str, code: str, purpose: str) -> SendResult:
        if not self.live:
            logger.info("[DEV] SMS to %s: Your %s OTP is: %s. Valid for 10 minutes.", contact, purpose, code)
            return SendResult(success=True, message="sent (dev mode)")
        number = clean_phone(contact)
        if not number:
            return SendResult(success=False, error="No phone number")
        try:
            return await self._call({
                "authorization": self.api_key,
                "route": "otp",
                "variables_values": code,
                "numbers": number,
            })
        except httpx.HTTPError as exc:
            logger.warning("OTP SMS to %s failed: %s", number, exc)
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)


class PushGateway:
    # no provider wired yet; records intent only
    async def send(self, recipient_id: str, payload: Dict[str, Any]) -> SendResult:
        logger.info("Would push to %s: %s", recipient_id, payload.get("title"))
        return SendResult(success=True, message="push stub")
