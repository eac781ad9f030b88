"""
Webhook Ingestor

Boundary adapter between provider deposit webhooks and the reconciliation
service:

1. Resolve the provider from the X-Payment-Provider header
2. Verify the HMAC-SHA256 signature of the raw body (before any parsing)
3. Decode and validate the provider-specific body
4. Hand the canonical DepositEvent to ReconciliationService.ingest() once

Redeliveries are not suppressed here; ingest() deduplicates them.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from reconciliation.deposit_event import DepositEvent
from reconciliation.errors import AuthenticationError, ValidationError
from reconciliation.provider_registry import DepositProvider, ProviderRegistry, provider_registry
from reconciliation.services.reconciliation_service import ReconciliationService, IngestResult
from reconciliation.webhooks.providers import parse_payload

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of ``body`` keyed with ``secret``."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class WebhookIngestor:
    """
    Verifies, parses and forwards one webhook delivery.
    """

    def __init__(self, service: ReconciliationService, registry: Optional[ProviderRegistry] = None):
        self.service = service
        self.registry = registry or provider_registry

    def resolve_provider(self, provider_header: Optional[str]) -> DepositProvider:
        provider = self.registry.resolve(provider_header)
        if provider is None:
            raise ValidationError(f"Unknown payment provider: {provider_header or '(missing)'}")
        return provider

    def verify_signature(self, provider: DepositProvider, body: bytes, signature: Optional[str]) -> bool:
        """
        Verify a provider webhook signature.

        A provider without a configured secret never verifies.
        """
        secret = self.registry.get_secret(provider)
        if not secret:
            logger.warning(f"No webhook secret configured for provider {provider.value}, rejecting delivery")
            return False

        if not signature:
            return False

        signature = signature.strip()
        if signature.lower().startswith(SIGNATURE_PREFIX):
            signature = signature[len(SIGNATURE_PREFIX):]

        # Header values arrive latin-1 decoded; compare bytes so non-ASCII input fails cleanly
        expected = compute_signature(secret, body)
        return hmac.compare_digest(expected.encode(), signature.lower().encode("utf-8"))

    def parse(self, provider: DepositProvider, body: bytes) -> DepositEvent:
        """
        Decode a verified body into a DepositEvent.

        Raises:
            ValidationError: not JSON, or not the provider's payload shape
        """
        try:
            payload: Dict[str, Any] = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationError("Invalid JSON payload") from e

        return parse_payload(provider, payload)

    async def handle(
        self,
        body: bytes,
        provider_header: Optional[str],
        signature: Optional[str]
    ) -> IngestResult:
        """
        Process one delivery end to end.

        Raises:
            ValidationError: unknown provider or malformed body
            AuthenticationError: signature missing or wrong
            StorageUnavailable: transient storage failure
        """
        provider = self.resolve_provider(provider_header)

        if not self.verify_signature(provider, body, signature):
            logger.warning(f"Invalid webhook signature from provider {provider.value}")
            raise AuthenticationError("Invalid webhook signature")

        event = self.parse(provider, body)
        return await self.service.ingest(event)
