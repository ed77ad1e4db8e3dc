"""Safaricom Daraja (M-Pesa) STK push client."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..config import Settings, get_settings
from ..errors import UpstreamError

LOGGER = logging.getLogger("uvicorn.error")


def is_enabled(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    return all(
        (
            settings.mpesa_consumer_key,
            settings.mpesa_consumer_secret,
            settings.mpesa_shortcode,
            settings.mpesa_passkey,
            settings.mpesa_callback_url,
        )
    )


def _timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


class MpesaClient:
    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.mpesa_timeout)
        return self._client

    async def _access_token(self) -> str:
        client = await self._get_client()
        resp = await client.get(
            self._settings.mpesa_auth_url,
            auth=(self._settings.mpesa_consumer_key, self._settings.mpesa_consumer_secret),
        )
        resp.raise_for_status()
        token = (resp.json() or {}).get("access_token")
        if not token:
            raise UpstreamError("Payment gateway authentication failed")
        return token

    async def stk_push(self, *, phone: str, amount: int, reference: str = "Lomu") -> Dict[str, Any]:
        """Initiate a push payment. Any transport or gateway failure raises ``UpstreamError``."""
        if not is_enabled(self._settings):
            raise UpstreamError("Payment gateway is not configured")
        settings = self._settings
        timestamp = _timestamp()
        payload = {
            "BusinessShortCode": settings.mpesa_shortcode,
            "Password": stk_password(settings.mpesa_shortcode, settings.mpesa_passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": amount,
            "PartyA": phone,
            "PartyB": settings.mpesa_shortcode,
            "PhoneNumber": phone,
            "CallBackURL": settings.mpesa_callback_url,
            "AccountReference": reference,
            "TransactionDesc": "Payment for services",
        }
        try:
            token = await self._access_token()
            client = await self._get_client()
            resp = await client.post(
                settings.mpesa_stkpush_url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
            data = resp.json() or {}
        except UpstreamError:
            raise
        except httpx.TimeoutException:
            LOGGER.error("STK push timed out")
            raise UpstreamError("Failed to initiate STK Push") from None
        except Exception as exc:
            LOGGER.error("STK push error: %s", exc)
            raise UpstreamError("Failed to initiate STK Push") from exc

        if str(data.get("ResponseCode", "")) != "0" or not data.get("CheckoutRequestID"):
            LOGGER.error("STK push rejected: %s", data.get("ResponseDescription") or data)
            raise UpstreamError("Failed to initiate STK Push")
        return data

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["MpesaClient", "is_enabled", "stk_password"]
