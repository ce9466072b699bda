"""
Payment Verifier — server-side confirmation against the payment gateway.

The client's redirect parameters are a claim, not a proof. Only the
gateway's own confirm response decides whether money moved and how much.

    POST /v1/payments/confirm               {paymentKey, orderId, amount}
    GET  /v1/payments/{paymentKey}          lookup after ALREADY_PROCESSED_PAYMENT
    POST /v1/payments/{paymentKey}/cancel   {cancelReason}

Auth is HTTP Basic with the secret key as username and an empty password.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from kungfu import Result, Ok, Error

from storefront.domain import (
    CheckoutError,
    CheckoutErrors,
    PaymentCallback,
    VerifiedPayment,
)
from storefront.log import get_logger

log = get_logger("verifier")

ALREADY_PROCESSED = "ALREADY_PROCESSED_PAYMENT"
DONE = "DONE"


def gateway_client(
    base_url: str,
    secret_key: str,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        auth=httpx.BasicAuth(secret_key, ""),
        timeout=timeout,
        transport=transport,
    )


def _wire_amount(amount: Decimal) -> int | float:
    return int(amount) if amount == amount.to_integral_value() else float(amount)


def _amount(raw: Any) -> Decimal | None:
    try:
        return Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None


class PaymentVerifier:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def confirm(self, callback: PaymentCallback) -> Result[VerifiedPayment, CheckoutError]:
        """
        Confirm the payment and check the gateway's total against the claim.

        A retry after an earlier successful confirm gets
        ALREADY_PROCESSED_PAYMENT back; the stored payment is looked up
        and validated the same way.
        """
        body = {
            "paymentKey": callback.payment_key,
            "orderId": callback.order_id,
            "amount": _wire_amount(callback.amount),
        }
        match await self._send("POST", "/v1/payments/confirm", json=body):
            case Error(e):
                return Error(e)
            case Ok(response):
                pass

        if response.is_success:
            return self._validate(callback, self._json(response))

        payload = self._json(response)
        if payload.get("code") == ALREADY_PROCESSED:
            log.info("payment_already_processed", payment_key=callback.payment_key)
            return await self.lookup(callback)

        return Error(self._failure(response, payload))

    async def lookup(self, callback: PaymentCallback) -> Result[VerifiedPayment, CheckoutError]:
        match await self._send("GET", f"/v1/payments/{callback.payment_key}"):
            case Error(e):
                return Error(e)
            case Ok(response):
                pass

        payload = self._json(response)
        if not response.is_success:
            return Error(self._failure(response, payload))
        if payload.get("status") != DONE:
            return Error(CheckoutErrors.payment_rejected(
                f"Payment is {payload.get('status')}, not {DONE}",
                code=str(payload.get("status")),
            ))
        return self._validate(callback, payload)

    async def cancel(self, payment_key: str, reason: str) -> Result[None, CheckoutError]:
        match await self._send(
            "POST",
            f"/v1/payments/{payment_key}/cancel",
            json={"cancelReason": reason},
        ):
            case Error(e):
                return Error(e)
            case Ok(response):
                if response.is_success:
                    return Ok(None)
                return Error(self._failure(response, self._json(response)))

    # ───────────────────────────────────────────────────────────────────────────

    async def _send(
        self, method: str, url: str, **kwargs: Any
    ) -> Result[httpx.Response, CheckoutError]:
        try:
            return Ok(await self._client.request(method, url, **kwargs))
        except httpx.TimeoutException:
            return Error(CheckoutErrors.gateway_unavailable(f"{method} {url} timed out"))
        except httpx.HTTPError as e:
            return Error(CheckoutErrors.gateway_unavailable(f"{method} {url} failed: {e}"))

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _failure(response: httpx.Response, payload: dict[str, Any]) -> CheckoutError:
        message = str(payload.get("message") or response.reason_phrase)
        if response.status_code >= 500 or response.status_code == 429:
            return CheckoutErrors.gateway_unavailable(
                f"Gateway answered {response.status_code}: {message}"
            )
        code = payload.get("code")
        return CheckoutErrors.payment_rejected(message, code=str(code) if code else None)

    @staticmethod
    def _validate(
        callback: PaymentCallback, payload: dict[str, Any]
    ) -> Result[VerifiedPayment, CheckoutError]:
        confirmed = _amount(payload.get("totalAmount"))
        if confirmed is None:
            return Error(CheckoutErrors.gateway_unavailable("Gateway response has no totalAmount"))
        if confirmed != callback.amount:
            return Error(CheckoutErrors.payment_mismatch(callback.amount, confirmed))

        return Ok(VerifiedPayment(
            payment_key=str(payload.get("paymentKey") or callback.payment_key),
            order_id=str(payload.get("orderId") or callback.order_id),
            amount=confirmed,
            method=str(payload.get("method") or "unknown"),
            order_name=payload.get("orderName"),
            transaction_id=payload.get("lastTransactionKey"),
        ))


__all__ = ("PaymentVerifier", "gateway_client")
