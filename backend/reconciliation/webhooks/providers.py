"""
Provider Payload Variants

One pydantic model per deposit provider. The webhook ingestor picks the
variant from the X-Payment-Provider header, validates the body against it
and calls ``to_deposit_event()``. A body that does not fit its variant is
rejected whole; no partially populated event is ever produced.

Supported Payloads:
- bank_feed:    flat camelCase bank push
- toss:         DEPOSIT_CALLBACK envelope with a nested ``data`` object
- open_banking: split date/time fields, DEPOSIT transactions only
"""

from datetime import datetime, date, time
from typing import Optional, Dict, Any, Literal, Type

from pydantic import BaseModel, Field, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from reconciliation.deposit_event import DepositEvent
from reconciliation.errors import ValidationError
from reconciliation.provider_registry import DepositProvider


class ProviderPayload(BaseModel):
    """Base class for provider body variants."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    def to_deposit_event(self, raw: Dict[str, Any]) -> DepositEvent:
        raise NotImplementedError


class BankFeedPayload(ProviderPayload):
    """Direct bank push of one credit line."""
    transaction_id: str = Field(..., alias="transactionId", min_length=1)
    bank_code: str = Field(..., alias="bankCode")
    account_number: str = Field(..., alias="accountNumber")
    depositor_name: str = Field(..., alias="depositorName")
    amount: int = Field(..., gt=0)
    transaction_date: str = Field(..., alias="transactionDate")
    memo: Optional[str] = None
    bank_name: Optional[str] = Field(None, alias="bankName")
    depositor_account: Optional[str] = Field(None, alias="depositorAccount")
    balance_after: Optional[int] = Field(None, alias="balanceAfter")

    def to_deposit_event(self, raw: Dict[str, Any]) -> DepositEvent:
        return DepositEvent(
            provider=DepositProvider.BANK_FEED.value,
            external_id=self.transaction_id,
            bank_code=self.bank_code,
            bank_name=self.bank_name,
            account_number=self.account_number,
            depositor_name=self.depositor_name,
            depositor_account=self.depositor_account,
            amount=self.amount,
            balance_after=self.balance_after,
            transaction_date=self.transaction_date,
            memo=self.memo,
            raw_payload=raw,
        )


class TossDepositData(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    transaction_key: str = Field(..., alias="transactionKey", min_length=1)
    bank_code: str = Field(..., alias="bankCode")
    account_number: str = Field(..., alias="accountNumber")
    customer_name: str = Field(..., alias="customerName")
    amount: int = Field(..., gt=0)
    deposited_at: str = Field(..., alias="depositedAt")


class TossPayload(ProviderPayload):
    """Toss Payments virtual-account deposit callback."""
    event_type: Literal["DEPOSIT_CALLBACK"] = Field(..., alias="eventType")
    created_at: Optional[str] = Field(None, alias="createdAt")
    data: TossDepositData

    def to_deposit_event(self, raw: Dict[str, Any]) -> DepositEvent:
        return DepositEvent(
            provider=DepositProvider.TOSS.value,
            external_id=self.data.transaction_key,
            bank_code=self.data.bank_code,
            account_number=self.data.account_number,
            depositor_name=self.data.customer_name,
            amount=self.data.amount,
            transaction_date=self.data.deposited_at,
            raw_payload=raw,
        )


class OpenBankingPayload(ProviderPayload):
    """Open banking transaction notification."""
    bank_transaction_id: str = Field(..., alias="bankTransactionId", min_length=1)
    transaction_date: date = Field(..., alias="transactionDate")
    transaction_time: time = Field(..., alias="transactionTime")
    transaction_type: Literal["DEPOSIT"] = Field(..., alias="transactionType")
    transaction_amount: int = Field(..., alias="transactionAmount", gt=0)
    counterparty_name: str = Field(..., alias="counterpartyName")
    counterparty_bank_code: str = Field(..., alias="counterpartyBankCode")
    account_number: str = Field(..., alias="accountNumber")
    transaction_memo: Optional[str] = Field(None, alias="transactionMemo")
    balance_after: Optional[int] = Field(None, alias="balanceAfter")

    def to_deposit_event(self, raw: Dict[str, Any]) -> DepositEvent:
        return DepositEvent(
            provider=DepositProvider.OPEN_BANKING.value,
            external_id=self.bank_transaction_id,
            bank_code=self.counterparty_bank_code,
            account_number=self.account_number,
            depositor_name=self.counterparty_name,
            amount=self.transaction_amount,
            balance_after=self.balance_after,
            transaction_date=datetime.combine(self.transaction_date, self.transaction_time),
            memo=self.transaction_memo,
            raw_payload=raw,
        )


PAYLOAD_MODELS: Dict[DepositProvider, Type[ProviderPayload]] = {
    DepositProvider.BANK_FEED: BankFeedPayload,
    DepositProvider.TOSS: TossPayload,
    DepositProvider.OPEN_BANKING: OpenBankingPayload,
}


def _describe(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def parse_payload(provider: DepositProvider, payload: Dict[str, Any]) -> DepositEvent:
    """
    Validate a decoded provider body and normalise it.

    Raises:
        ValidationError: body does not match the provider's shape
    """
    model = PAYLOAD_MODELS.get(provider)
    if model is None:
        raise ValidationError(f"Unsupported provider: {provider}")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    try:
        variant = model.model_validate(payload)
        return variant.to_deposit_event(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {provider.value} payload: {_describe(e)}") from e
