"""
Unit Tests for the Webhook Ingestor

Tests:
- Provider resolution from the X-Payment-Provider header
- HMAC-SHA256 signature verification (prefix, case, missing secret)
- Payload variants for bank_feed, toss and open_banking
- Rejection of malformed bodies before anything reaches the service
- Exactly one ingest() call per accepted delivery

Run with: pytest tests/test_webhook_ingestor.py -v
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from reconciliation.errors import AuthenticationError, ValidationError
from reconciliation.provider_registry import DepositProvider
from reconciliation.webhooks import WebhookIngestor, compute_signature, parse_payload

BANK_FEED_SECRET = "bank-feed-test-secret"
TOSS_SECRET = "toss-test-secret"


def bank_feed_body(**overrides):
    payload = {
        "transactionId": "BF-20240115-0001",
        "bankCode": "004",
        "accountNumber": "123-456-7890",
        "depositorName": "Kim Minsu",
        "amount": 50000,
        "transactionDate": "2024-01-15T10:00:00Z",
        "memo": "order 1001",
    }
    payload.update(overrides)
    return payload


def toss_body(**overrides):
    data = {
        "transactionKey": "TOSS-KEY-1",
        "bankCode": "088",
        "accountNumber": "110-222-333333",
        "customerName": "Lee Jiwon",
        "amount": 32000,
        "depositedAt": "2024-01-15T19:30:00+09:00",
    }
    data.update(overrides)
    return {"eventType": "DEPOSIT_CALLBACK", "createdAt": "2024-01-15T10:30:01Z", "data": data}


def open_banking_body(**overrides):
    payload = {
        "bankTransactionId": "OB-778899",
        "transactionDate": "2024-01-15",
        "transactionTime": "10:00:00",
        "transactionType": "DEPOSIT",
        "transactionAmount": 15000,
        "counterpartyName": "Park Jiyoung",
        "counterpartyBankCode": "020",
        "accountNumber": "1002-333-444444",
        "transactionMemo": "deposit",
    }
    payload.update(overrides)
    return payload


def encode(payload) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def service():
    service = MagicMock()
    service.ingest = AsyncMock(return_value="ingest-result")
    return service


@pytest.fixture
def ingestor(service):
    return WebhookIngestor(service)


class TestProviderResolution:
    """Test X-Payment-Provider header handling."""

    def test_known_providers(self, ingestor):
        assert ingestor.resolve_provider("bank_feed") == DepositProvider.BANK_FEED
        assert ingestor.resolve_provider(" TOSS ") == DepositProvider.TOSS
        assert ingestor.resolve_provider("open_banking") == DepositProvider.OPEN_BANKING

    def test_unknown_provider(self, ingestor):
        with pytest.raises(ValidationError) as exc_info:
            ingestor.resolve_provider("paypal")
        assert "paypal" in exc_info.value.message

    def test_missing_provider(self, ingestor):
        with pytest.raises(ValidationError):
            ingestor.resolve_provider(None)


class TestSignatureVerification:
    """Test webhook HMAC verification."""

    def test_valid_signature(self, ingestor):
        body = encode(bank_feed_body())
        signature = compute_signature(BANK_FEED_SECRET, body)

        assert ingestor.verify_signature(DepositProvider.BANK_FEED, body, signature)

    def test_prefixed_and_uppercase_signature(self, ingestor):
        body = encode(bank_feed_body())
        signature = "sha256=" + compute_signature(BANK_FEED_SECRET, body).upper()

        assert ingestor.verify_signature(DepositProvider.BANK_FEED, body, signature)

    def test_signature_is_per_provider_secret(self, ingestor):
        body = encode(toss_body())

        assert not ingestor.verify_signature(
            DepositProvider.TOSS, body, compute_signature(BANK_FEED_SECRET, body)
        )
        assert ingestor.verify_signature(DepositProvider.TOSS, body, compute_signature(TOSS_SECRET, body))

    def test_tampered_body(self, ingestor):
        body = encode(bank_feed_body())
        signature = compute_signature(BANK_FEED_SECRET, body)
        tampered = encode(bank_feed_body(amount=5000000))

        assert not ingestor.verify_signature(DepositProvider.BANK_FEED, tampered, signature)

    def test_missing_signature(self, ingestor):
        assert not ingestor.verify_signature(DepositProvider.BANK_FEED, b"{}", None)
        assert not ingestor.verify_signature(DepositProvider.BANK_FEED, b"{}", "")

    def test_non_ascii_signature_is_rejected(self, ingestor):
        body = encode(bank_feed_body())

        assert not ingestor.verify_signature(DepositProvider.BANK_FEED, body, "sha256=éé")
        assert not ingestor.verify_signature(DepositProvider.BANK_FEED, body, "한글서명")

    def test_provider_without_secret_rejects_everything(self, ingestor):
        body = encode(open_banking_body())

        assert not ingestor.verify_signature(DepositProvider.OPEN_BANKING, body, compute_signature("", body))


class TestPayloadVariants:
    """Test provider body normalisation."""

    def test_bank_feed(self):
        event = parse_payload(DepositProvider.BANK_FEED, bank_feed_body(bankName="KB Kookmin", balanceAfter=150000))

        assert event.provider == "bank_feed"
        assert event.external_id == "BF-20240115-0001"
        assert event.bank_code == "004"
        assert event.bank_name == "KB Kookmin"
        assert event.depositor_name == "Kim Minsu"
        assert event.amount == 50000
        assert event.balance_after == 150000
        assert event.memo == "order 1001"
        assert event.transaction_date == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert event.raw_payload["transactionId"] == "BF-20240115-0001"

    def test_toss_nested_data_and_offset(self):
        event = parse_payload(DepositProvider.TOSS, toss_body())

        assert event.provider == "toss"
        assert event.external_id == "TOSS-KEY-1"
        assert event.depositor_name == "Lee Jiwon"
        assert event.amount == 32000
        # +09:00 normalised to UTC
        assert event.transaction_date == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_open_banking_split_timestamp(self):
        event = parse_payload(DepositProvider.OPEN_BANKING, open_banking_body())

        assert event.provider == "open_banking"
        assert event.external_id == "OB-778899"
        assert event.bank_code == "020"
        assert event.depositor_name == "Park Jiyoung"
        assert event.amount == 15000
        assert event.memo == "deposit"
        assert event.transaction_date == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_toss_wrong_event_type(self):
        body = toss_body()
        body["eventType"] = "PAYMENT_STATUS_CHANGED"

        with pytest.raises(ValidationError) as exc_info:
            parse_payload(DepositProvider.TOSS, body)
        assert "Invalid toss payload" in exc_info.value.message

    def test_open_banking_withdrawal_rejected(self):
        with pytest.raises(ValidationError):
            parse_payload(DepositProvider.OPEN_BANKING, open_banking_body(transactionType="WITHDRAWAL"))

    @pytest.mark.parametrize("amount", [0, -100, "lots"])
    def test_non_positive_amount(self, amount):
        with pytest.raises(ValidationError):
            parse_payload(DepositProvider.BANK_FEED, bank_feed_body(amount=amount))

    def test_missing_required_field(self):
        body = bank_feed_body()
        del body["transactionId"]

        with pytest.raises(ValidationError) as exc_info:
            parse_payload(DepositProvider.BANK_FEED, body)
        assert "transactionId" in exc_info.value.message

    def test_unparseable_date(self):
        with pytest.raises(ValidationError):
            parse_payload(DepositProvider.BANK_FEED, bank_feed_body(transactionDate="yesterday"))

    def test_body_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_payload(DepositProvider.BANK_FEED, [bank_feed_body()])


class TestHandle:
    """Test the full delivery path."""

    @pytest.mark.asyncio
    async def test_valid_delivery_ingested_once(self, ingestor, service):
        body = encode(bank_feed_body())

        result = await ingestor.handle(body, "bank_feed", compute_signature(BANK_FEED_SECRET, body))

        assert result == "ingest-result"
        service.ingest.assert_awaited_once()
        event = service.ingest.await_args.args[0]
        assert event.external_id == "BF-20240115-0001"

    @pytest.mark.asyncio
    async def test_bad_signature_never_reaches_service(self, ingestor, service):
        body = encode(bank_feed_body())

        with pytest.raises(AuthenticationError):
            await ingestor.handle(body, "bank_feed", "sha256=" + "0" * 64)

        service.ingest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_ascii_signature_is_authentication_failure(self, ingestor, service):
        body = encode(bank_feed_body())

        with pytest.raises(AuthenticationError):
            await ingestor.handle(body, "bank_feed", "sha256=éé")

        service.ingest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signature_checked_before_parsing(self, ingestor, service):
        """Unsigned garbage is an authentication failure, not a parse error."""
        with pytest.raises(AuthenticationError):
            await ingestor.handle(b"not json", "bank_feed", None)

    @pytest.mark.asyncio
    async def test_invalid_json(self, ingestor, service):
        body = b"{not json"

        with pytest.raises(ValidationError) as exc_info:
            await ingestor.handle(body, "bank_feed", compute_signature(BANK_FEED_SECRET, body))

        assert exc_info.value.message == "Invalid JSON payload"
        service.ingest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signed_but_malformed_payload(self, ingestor, service):
        body = encode(bank_feed_body(amount=-1))

        with pytest.raises(ValidationError):
            await ingestor.handle(body, "bank_feed", compute_signature(BANK_FEED_SECRET, body))

        service.ingest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_provider(self, ingestor, service):
        with pytest.raises(ValidationError):
            await ingestor.handle(b"{}", "unknown-bank", "sha256=abc")

        service.ingest.assert_not_awaited()
