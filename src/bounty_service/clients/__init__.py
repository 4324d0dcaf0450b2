"""HTTP clients for the settlement gateway and the rewards source."""

from bounty_service.clients.rewards_client import RewardsClient
from bounty_service.clients.settlement_client import (
    Confirmation,
    SettlementClient,
    TransferResult,
)

__all__ = ["Confirmation", "RewardsClient", "SettlementClient", "TransferResult"]
