"""
Deposit webhook intake.
"""

from .ingestor import WebhookIngestor, compute_signature
from .providers import (
    BankFeedPayload,
    TossPayload,
    OpenBankingPayload,
    PAYLOAD_MODELS,
    parse_payload,
)

__all__ = [
    "WebhookIngestor", "compute_signature",
    "BankFeedPayload", "TossPayload", "OpenBankingPayload", "PAYLOAD_MODELS", "parse_payload",
]
