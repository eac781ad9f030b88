"""
Deposit Reconciliation Engine

Matches incoming bank deposits to pending orders:
- Signed provider webhooks (bank feed, Toss, open banking)
- Idempotent deposit ingestion
- Weighted amount / name / time similarity scoring
- Auto-matching of the top candidate, manual matching by operators
- Audit trail for every match attempt
"""

from reconciliation.errors import (
    ReconciliationError,
    DuplicateDeposit,
    NotFoundError,
    ConflictError,
    ValidationError,
    AuthenticationError,
    StorageUnavailable,
)
from reconciliation.provider_registry import (
    DepositProvider,
    ProviderConfig,
    ProviderRegistry,
    provider_registry
)
from reconciliation.deposit_event import DepositEvent
from reconciliation.matching_rules import (
    SimilarityScorer,
    similarity_scorer,
    MatchEvaluator,
    MatchSuggestion,
)
from reconciliation.services.candidate_finder import CandidateFinder
from reconciliation.services.reconciliation_service import (
    ReconciliationService,
    IngestResult,
    IngestStatus,
    MatchOutcome,
)
from reconciliation.webhooks import WebhookIngestor
from reconciliation.endpoints.payments_api import router as payments_router

__all__ = [
    # Errors
    'ReconciliationError',
    'DuplicateDeposit',
    'NotFoundError',
    'ConflictError',
    'ValidationError',
    'AuthenticationError',
    'StorageUnavailable',
    # Providers
    'DepositProvider',
    'ProviderConfig',
    'ProviderRegistry',
    'provider_registry',
    'DepositEvent',
    # Matching
    'SimilarityScorer',
    'similarity_scorer',
    'MatchEvaluator',
    'MatchSuggestion',
    'CandidateFinder',
    # Service
    'ReconciliationService',
    'IngestResult',
    'IngestStatus',
    'MatchOutcome',
    'WebhookIngestor',
    # Router
    'payments_router'
]
