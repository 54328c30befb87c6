"""Delivery fan-out - sends one message to registered devices."""
import logging
from typing import List

from ..exceptions import DeviceNotFoundError
from ..utils.tokens import token_prefix
from .gateway import GatewayClient
from .messages import DeliveryOutcome, OutboundMessage, count_successes
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


class DeliveryService:
    """Fans messages out through the gateway client.

    Tokens the gateway reports as permanently invalid are removed from the
    registry after the send completes.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        gateway: GatewayClient,
        prune_invalid_tokens: bool = True,
    ):
        self._registry = registry
        self._gateway = gateway
        self._prune_invalid_tokens = prune_invalid_tokens

    async def broadcast(self, message: OutboundMessage) -> List[DeliveryOutcome]:
        """Send to every device registered at call time.

        Returns one outcome per token, in registry order.
        """
        tokens = await self._registry.list_tokens()
        if not tokens:
            logger.debug("No registered devices for push notification")
            return []

        outcomes = await self._gateway.send_many(tokens, message)
        await self._prune(outcomes)

        logger.info(
            f"Push notifications sent: {count_successes(outcomes)} success, "
            f"{len(outcomes) - count_successes(outcomes)} failed"
        )
        return outcomes

    async def deliver_to(self, token: str, message: OutboundMessage) -> DeliveryOutcome:
        """Send to a single registered device."""
        if await self._registry.get(token) is None:
            raise DeviceNotFoundError(f"Device {token_prefix(token)} is not registered")

        outcome = await self._gateway.send(token, message)
        await self._prune([outcome])
        return outcome

    async def _prune(self, outcomes: List[DeliveryOutcome]):
        if not self._prune_invalid_tokens:
            return
        for outcome in outcomes:
            if outcome.is_permanent_failure:
                logger.info(
                    f"Removing dead token {token_prefix(outcome.token)} ({outcome.reason})"
                )
                await self._registry.remove(outcome.token)
