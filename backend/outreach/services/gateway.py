"""APNs gateway client using token-based (JWT) authentication over HTTP/2."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from ..config import Settings
from ..exceptions import GatewayConfigError
from ..utils.tokens import token_prefix
from .messages import DeliveryOutcome, OutboundMessage

logger = logging.getLogger(__name__)

APNS_PRODUCTION_HOST = "https://api.push.apple.com"
APNS_SANDBOX_HOST = "https://api.sandbox.push.apple.com"

# APNs rejects provider tokens older than 60 minutes; refresh well before
TOKEN_REFRESH_SECONDS = 50 * 60

# Provider token rejected by APNs, drop the cached one
PROVIDER_TOKEN_REASONS = ("ExpiredProviderToken", "InvalidProviderToken")


@dataclass
class GatewayConfig:
    """APNs configuration."""
    key_path: str
    key_id: str
    team_id: str
    bundle_id: str
    use_sandbox: bool = True
    timeout_seconds: float = 10.0
    max_concurrent_sends: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayConfig":
        return cls(
            key_path=settings.apns_key_path,
            key_id=settings.apns_key_id,
            team_id=settings.apns_team_id,
            bundle_id=settings.apns_bundle_id,
            use_sandbox=settings.apns_use_sandbox,
            timeout_seconds=settings.gateway_timeout_seconds,
            max_concurrent_sends=settings.max_concurrent_sends,
        )

    @property
    def base_url(self) -> str:
        return APNS_SANDBOX_HOST if self.use_sandbox else APNS_PRODUCTION_HOST


@dataclass(frozen=True)
class BearerCredential:
    """Signed provider token and the time it was issued (epoch seconds)."""
    token: str
    issued_at: int


def load_signing_key(key_path: str) -> ec.EllipticCurvePrivateKey:
    """Load the .p8 EC private key, failing hard on anything unusable."""
    if not key_path:
        raise GatewayConfigError("APNS_KEY_PATH is not configured")

    try:
        with open(key_path, "rb") as f:
            key_data = f.read()
    except OSError as e:
        raise GatewayConfigError(f"Cannot read APNs signing key {key_path}: {e}") from e

    try:
        key = serialization.load_pem_private_key(key_data, password=None)
    except (ValueError, TypeError) as e:
        raise GatewayConfigError(f"Invalid APNs signing key {key_path}: {e}") from e

    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise GatewayConfigError(f"APNs signing key {key_path} is not an EC private key")
    return key


class GatewayClient:
    """Sends push notifications to APNs.

    One provider token is shared by every send and regenerated only when it
    is older than TOKEN_REFRESH_SECONDS. Sends never hold the token lock
    while waiting on the network.
    """

    def __init__(
        self,
        config: GatewayConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        for name in ("key_id", "team_id", "bundle_id"):
            if not getattr(config, name):
                raise GatewayConfigError(f"APNs {name} is not configured")

        self._config = config
        self._signing_key = load_signing_key(config.key_path)
        self._clock = clock
        self._credential: Optional[BearerCredential] = None
        self._token_lock = asyncio.Lock()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            http2=True,
            timeout=config.timeout_seconds,
            limits=httpx.Limits(max_connections=config.max_concurrent_sends),
        )
        logger.info(
            f"APNs client configured (sandbox={config.use_sandbox}, "
            f"topic={config.bundle_id})"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayClient":
        return cls(GatewayConfig.from_settings(settings))

    def _is_fresh(self, credential: BearerCredential) -> bool:
        return self._clock() - credential.issued_at < TOKEN_REFRESH_SECONDS

    def _issue_credential(self) -> BearerCredential:
        issued_at = int(self._clock())
        token = jwt.encode(
            {"iss": self._config.team_id, "iat": issued_at},
            self._signing_key,
            algorithm="ES256",
            headers={"kid": self._config.key_id},
        )
        logger.debug(f"Issued new APNs provider token (iat={issued_at})")
        return BearerCredential(token=token, issued_at=issued_at)

    async def current_credential(self) -> BearerCredential:
        """Return the cached provider token, regenerating it once stale."""
        credential = self._credential
        if credential is not None and self._is_fresh(credential):
            return credential

        async with self._token_lock:
            # Another caller may have refreshed while we waited
            credential = self._credential
            if credential is None or not self._is_fresh(credential):
                credential = self._issue_credential()
                self._credential = credential
            return credential

    def _invalidate(self, credential: BearerCredential):
        if self._credential is credential:
            self._credential = None

    async def send(self, token: str, message: OutboundMessage) -> DeliveryOutcome:
        """Send a notification to one device. Never raises for delivery errors."""
        credential = await self.current_credential()
        headers = {
            "authorization": f"bearer {credential.token}",
            "apns-topic": self._config.bundle_id,
            "apns-push-type": "alert",
            "apns-priority": message.urgency.apns_priority,
        }
        url = f"{self._config.base_url}/3/device/{token}"

        try:
            response = await self._http.post(
                url,
                json=message.to_payload(),
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.TimeoutException:
            logger.warning(f"APNs request timed out for {token_prefix(token)}")
            return DeliveryOutcome(token=token, success=False, reason="timeout")
        except httpx.HTTPError as e:
            logger.warning(f"APNs request failed for {token_prefix(token)}: {type(e).__name__}")
            return DeliveryOutcome(token=token, success=False, reason="connection_error")

        gateway_id = response.headers.get("apns-id")
        if response.status_code == 200:
            logger.debug(f"Push notification sent to {token_prefix(token)}")
            return DeliveryOutcome(
                token=token,
                success=True,
                status_code=200,
                gateway_id=gateway_id,
            )

        try:
            reason = response.json().get("reason") or f"http_{response.status_code}"
        except (ValueError, AttributeError):
            reason = f"http_{response.status_code}"

        if reason in PROVIDER_TOKEN_REASONS:
            self._invalidate(credential)

        logger.warning(
            f"Push notification rejected: {reason} "
            f"(status {response.status_code}, token: {token_prefix(token)})"
        )
        return DeliveryOutcome(
            token=token,
            success=False,
            status_code=response.status_code,
            gateway_id=gateway_id,
            reason=reason,
        )

    async def send_many(
        self,
        tokens: Sequence[str],
        message: OutboundMessage,
    ) -> List[DeliveryOutcome]:
        """Send to many devices concurrently; outcomes follow input order."""
        if not tokens:
            return []

        semaphore = asyncio.Semaphore(self._config.max_concurrent_sends)

        async def send_with_limit(token: str) -> DeliveryOutcome:
            async with semaphore:
                return await self.send(token, message)

        results = await asyncio.gather(
            *[send_with_limit(token) for token in tokens],
            return_exceptions=True,
        )

        outcomes = []
        for token, result in zip(tokens, results):
            if isinstance(result, Exception):
                logger.error(f"Unexpected error sending to {token_prefix(token)}: {result}")
                result = DeliveryOutcome(token=token, success=False, reason="internal_error")
            outcomes.append(result)
        return outcomes

    async def aclose(self):
        if self._owns_client:
            await self._http.aclose()
