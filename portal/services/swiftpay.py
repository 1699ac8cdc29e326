"""SwiftPay gateway client (M-Pesa STK-push + verification proxy)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from portal.config import Settings
from portal.exceptions import ProviderError

logger = logging.getLogger("portal.swiftpay")


@dataclass
class StkPushResult:
    """Outcome of an STK-push request the provider answered with JSON."""

    accepted: bool
    status_code: int
    payload: dict[str, Any] = field(default_factory=dict)
    checkout_id: str | None = None


def extract_checkout_id(payload: dict[str, Any]) -> str | None:
    data = payload.get("data")
    if isinstance(data, dict):
        for key in ("checkout_id", "request_id"):
            if data.get(key):
                return str(data[key])
    if payload.get("CheckoutRequestID"):
        return str(payload["CheckoutRequestID"])
    return None


class SwiftPayClient:
    """Async client for the SwiftPay REST API.

    One instance is built per application and injected into request handlers.
    Each call opens a short-lived ``httpx.AsyncClient`` with a bounded timeout.
    """

    STK_PUSH_PATH = "/api/mpesa/stk-push-api"

    def __init__(
        self,
        *,
        api_key: str,
        till_id: str,
        backend_url: str,
        proxy_url: str,
        proxy_api_key: str = "",
        timeout: float = 10.0,
        verify_retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.till_id = till_id
        self.backend_url = backend_url.rstrip("/")
        self.proxy_url = proxy_url
        self.proxy_api_key = proxy_api_key
        self.timeout = timeout
        self.verify_retries = max(0, verify_retries)
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "SwiftPayClient":
        return cls(
            api_key=settings.swiftpay_api_key,
            till_id=settings.swiftpay_till_id,
            backend_url=settings.swiftpay_backend_url,
            proxy_url=settings.mpesa_proxy_url,
            proxy_api_key=settings.mpesa_proxy_api_key,
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.till_id)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def stk_push(self, *, phone_number: str, amount: float) -> StkPushResult:
        """Ask the provider to prompt ``phone_number`` for ``amount``.

        Raises ProviderError when the provider cannot be reached, answers with a
        5xx, or answers with something that is not a JSON object.
        """

        url = f"{self.backend_url}{self.STK_PUSH_PATH}"
        body = {"phone_number": phone_number, "amount": amount, "till_id": self.till_id}

        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.error("stk_push_transport_error url=%s error=%s", url, exc)
            raise ProviderError(f"Payment service unreachable: {exc}") from exc

        logger.info("stk_push_response status=%s", response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            logger.error("stk_push_unparsable_response status=%s body=%r", response.status_code, response.text[:500])
            raise ProviderError("Invalid response from payment service") from exc

        if not isinstance(payload, dict):
            raise ProviderError("Invalid response from payment service")

        if response.status_code >= 500:
            logger.error("stk_push_upstream_error status=%s payload=%s", response.status_code, payload)
            raise ProviderError(str(payload.get("message") or "Payment service error"))

        accepted = response.is_success and (
            payload.get("success") is True or payload.get("status") == "success"
        )
        return StkPushResult(
            accepted=accepted,
            status_code=response.status_code,
            payload=payload,
            checkout_id=extract_checkout_id(payload) if accepted else None,
        )

    async def verify_payment(self, checkout_id: str) -> dict[str, Any] | None:
        """Query the M-Pesa verification proxy for one checkout id.

        Transport errors and 5xx answers are retried ``verify_retries`` times.
        Returns the proxy's JSON object, or None when no usable answer came back.
        """

        body = {"checkoutId": checkout_id, "apiKey": self.proxy_api_key}

        for attempt in range(1, self.verify_retries + 2):
            try:
                async with self._client() as client:
                    response = await client.post(self.proxy_url, json=body)
            except httpx.HTTPError as exc:
                logger.warning(
                    "verify_transport_error checkout_id=%s attempt=%s error=%s",
                    checkout_id,
                    attempt,
                    exc,
                )
                continue

            if response.status_code >= 500:
                logger.warning(
                    "verify_upstream_error checkout_id=%s attempt=%s status=%s",
                    checkout_id,
                    attempt,
                    response.status_code,
                )
                continue

            if not response.is_success:
                logger.error("verify_rejected checkout_id=%s status=%s", checkout_id, response.status_code)
                return None

            try:
                payload = response.json()
            except ValueError:
                logger.error("verify_unparsable_response checkout_id=%s", checkout_id)
                return None

            return payload if isinstance(payload, dict) else None

        return None
