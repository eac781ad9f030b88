"""
Deposit Provider Registry

Central registry of the bank / payment providers allowed to push deposit
notifications. Each provider has:
- Unique identifier (sent in the X-Payment-Provider header)
- Display name
- The settings key holding its webhook signing secret

Supported Providers:
- bank_feed: Direct bank push of account credit lines
- toss: Toss Payments virtual-account deposit callbacks
- open_banking: Open banking transaction notifications
"""

from enum import Enum
from typing import Dict, Any, List, Optional
from dataclasses import dataclass

from config import get_settings


class DepositProvider(str, Enum):
    """
    Recognised deposit notification providers.
    """
    BANK_FEED = "bank_feed"
    TOSS = "toss"
    OPEN_BANKING = "open_banking"


@dataclass
class ProviderConfig:
    """
    Configuration for a deposit provider.
    """
    provider: DepositProvider
    display_name: str
    secret_setting: str

    def secret(self) -> Optional[str]:
        return get_settings().webhook_secret_for(self.secret_setting)

    @property
    def enabled(self) -> bool:
        """A provider without a signing secret cannot be verified, so it is off."""
        return self.secret() is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.value,
            "display_name": self.display_name,
            "enabled": self.enabled
        }


class ProviderRegistry:
    """
    Lookup of provider configurations for the webhook ingestor.
    """

    _default_configs: Dict[DepositProvider, ProviderConfig] = {
        DepositProvider.BANK_FEED: ProviderConfig(
            provider=DepositProvider.BANK_FEED,
            display_name="Bank Feed",
            secret_setting="BANK_FEED_WEBHOOK_SECRET"
        ),
        DepositProvider.TOSS: ProviderConfig(
            provider=DepositProvider.TOSS,
            display_name="Toss Payments Virtual Account",
            secret_setting="TOSS_WEBHOOK_SECRET"
        ),
        DepositProvider.OPEN_BANKING: ProviderConfig(
            provider=DepositProvider.OPEN_BANKING,
            display_name="Open Banking",
            secret_setting="OPEN_BANKING_WEBHOOK_SECRET"
        ),
    }

    def __init__(self):
        self._configs = dict(self._default_configs)

    def resolve(self, name: Optional[str]) -> Optional[DepositProvider]:
        """Map a header value to a provider, case-insensitively."""
        if not name:
            return None
        try:
            return DepositProvider(name.strip().lower())
        except ValueError:
            return None

    def get_enabled_providers(self) -> List[DepositProvider]:
        return [cfg.provider for cfg in self._configs.values() if cfg.enabled]

    def get_secret(self, provider: DepositProvider) -> Optional[str]:
        cfg = self._configs.get(provider)
        return cfg.secret() if cfg else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            provider.value: cfg.to_dict()
            for provider, cfg in self._configs.items()
        }


# Global registry instance
provider_registry = ProviderRegistry()
