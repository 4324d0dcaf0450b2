"""Async HTTP client for the settlement gateway."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from bounty_service.amounts import format_amount, to_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger


@dataclass
class TransferResult:
    """Outcome of a funds transfer request."""

    success: bool
    signature: str | None = None
    error: str | None = None


@dataclass
class Confirmation:
    """Outcome of a transaction confirmation lookup."""

    confirmed: bool
    amount: Decimal | None = None
    from_address: str | None = None
    to_address: str | None = None


class SettlementClient:
    """
    Client for the gateway that moves funds out of the funding wallet.

    Three operations:
    1. transfer — send an amount to a payout address, returning a signature.
    2. confirm — look up a signature and report whether it is confirmed.
    3. get_balance — read the balance held at an address.
    """

    def __init__(
        self,
        base_url: str,
        transfer_path: str,
        confirm_path: str,
        balance_path: str,
        timeout_seconds: float,
    ) -> None:
        self._base_url = base_url
        self._transfer_path = transfer_path
        self._confirm_path = confirm_path
        self._balance_path = balance_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        logger = get_logger(__name__)
        try:
            return await self._client.request(method, path, json=json_body)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Settlement gateway connection failed",
                extra={"operation": operation, "error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="SETTLEMENT_SERVICE_ERROR",
                message="Cannot connect to settlement gateway",
                status_code=502,
                details={"operation": operation},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Settlement gateway HTTP error",
                extra={"operation": operation, "error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="SETTLEMENT_SERVICE_ERROR",
                message="Settlement gateway request failed",
                status_code=502,
                details={"operation": operation},
            ) from exc

    def _unexpected(self, response: httpx.Response, operation: str) -> ServiceError:
        get_logger(__name__).warning(
            "Settlement gateway unexpected status",
            extra={
                "operation": operation,
                "status_code": response.status_code,
                "base_url": self._base_url,
            },
        )
        return ServiceError(
            error="SETTLEMENT_SERVICE_ERROR",
            message="Settlement gateway returned unexpected status",
            status_code=502,
            details={"operation": operation, "status_code": response.status_code},
        )

    async def transfer(self, to_address: str, amount: Decimal) -> TransferResult:
        """
        Send ``amount`` from the funding wallet to ``to_address``.

        A 4xx answer is a rejected transfer and is returned as a failed result.
        Transport failures and 5xx answers raise SETTLEMENT_SERVICE_ERROR.
        """
        response = await self._request(
            "POST",
            self._transfer_path,
            "transfer",
            json_body={"to_address": to_address, "amount": format_amount(amount)},
        )

        if response.status_code in (200, 201):
            body: dict[str, Any] = response.json()
            signature = body.get("signature")
            if not isinstance(signature, str) or signature == "":
                return TransferResult(success=False, error="Transfer returned no signature")
            return TransferResult(success=True, signature=signature)

        if 400 <= response.status_code < 500:
            try:
                error_body: dict[str, Any] = response.json()
            except ValueError:
                error_body = {}
            message = error_body.get("message") or error_body.get("error") or "Transfer rejected"
            return TransferResult(success=False, error=str(message))

        raise self._unexpected(response, "transfer")

    async def confirm(self, signature: str) -> Confirmation:
        """Report whether a transaction signature is confirmed."""
        response = await self._request(
            "GET",
            self._confirm_path.format(signature=signature),
            "confirm",
        )

        if response.status_code == 404:
            return Confirmation(confirmed=False)

        if response.status_code == 200:
            body: dict[str, Any] = response.json()
            return Confirmation(
                confirmed=body.get("confirmed") is True,
                amount=to_amount(body.get("amount")) if body.get("amount") is not None else None,
                from_address=body.get("from_address"),
                to_address=body.get("to_address"),
            )

        raise self._unexpected(response, "confirm")

    async def get_balance(self, address: str) -> Decimal:
        """Read the balance held at ``address``."""
        response = await self._request(
            "GET",
            self._balance_path.format(address=address),
            "balance",
        )

        if response.status_code == 200:
            body: dict[str, Any] = response.json()
            balance = to_amount(body.get("balance"))
            if balance is None or balance < 0:
                raise ServiceError(
                    error="SETTLEMENT_SERVICE_ERROR",
                    message="Settlement gateway returned an invalid balance",
                    status_code=502,
                    details={"operation": "balance"},
                )
            return balance

        raise self._unexpected(response, "balance")

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
