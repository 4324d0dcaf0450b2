"""Async HTTP client for the creator rewards source."""

from __future__ import annotations

from typing import Any

import httpx

from bounty_service.amounts import ZERO, to_amount
from bounty_service.core.exceptions import ServiceError
from bounty_service.logging import get_logger


def _unavailable(message: str) -> ServiceError:
    return ServiceError(
        error="REWARDS_SERVICE_UNAVAILABLE",
        message=message,
        status_code=502,
        details={},
    )


class RewardsClient:
    """Queries and claims creator rewards accrued to a wallet."""

    def __init__(
        self,
        base_url: str,
        rewards_path: str,
        claim_path: str,
        timeout_seconds: float,
    ) -> None:
        self._base_url = base_url
        self._rewards_path = rewards_path
        self._claim_path = claim_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def _request(self, method: str, path: str) -> dict[str, Any]:
        logger = get_logger(__name__)
        try:
            response = await self._client.request(method, path)
        except httpx.HTTPError as exc:
            logger.warning(
                "Rewards source request failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise _unavailable("Cannot reach rewards source") from exc

        if response.status_code != 200:
            logger.warning(
                "Rewards source unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise _unavailable("Rewards source returned unexpected status")

        body: dict[str, Any] = response.json()
        return body

    async def get_rewards(self, wallet: str) -> dict[str, Any]:
        """Return the claimable rewards balance for ``wallet``."""
        body = await self._request("GET", self._rewards_path.format(wallet=wallet))
        claimable = to_amount(body.get("claimable", 0))
        if claimable is None or claimable < 0:
            raise _unavailable("Rewards source returned an invalid balance")
        return {"wallet": wallet, "claimable": claimable}

    async def claim(self, wallet: str) -> dict[str, Any]:
        """Claim accrued rewards into ``wallet``."""
        body = await self._request("POST", self._claim_path.format(wallet=wallet))
        success = body.get("success") is True
        amount = to_amount(body.get("amount", 0)) if success else ZERO
        if amount is None or amount < 0:
            raise _unavailable("Rewards source returned an invalid claim amount")
        return {
            "success": success,
            "amount": amount,
            "signature": body.get("signature"),
            "error": body.get("error"),
        }

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
