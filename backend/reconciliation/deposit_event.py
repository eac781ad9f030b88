"""
Canonical Deposit Event

Every provider payload is normalised into this one shape before it
reaches the reconciliation service. Nothing untyped crosses that boundary.

Design principles:
- Amounts are positive integers in minor currency units
- Timestamps are timezone-aware UTC (naive input is taken as UTC)
- The original provider payload is kept verbatim for audit
"""

from datetime import date, datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, ConfigDict, field_validator

from reconciliation.matching_rules.similarity import to_utc


class DepositEvent(BaseModel):
    """One bank transaction notification, provider-agnostic."""
    model_config = ConfigDict(str_strip_whitespace=True)

    provider: str = Field(..., min_length=1, description="Provider identifier (bank_feed, toss, ...)")
    external_id: str = Field(..., min_length=1, description="Provider transaction id, unique per provider")
    bank_code: Optional[str] = Field(None, description="Receiving bank code")
    bank_name: Optional[str] = Field(None)
    account_number: Optional[str] = Field(None, description="Receiving account number")
    depositor_name: str = Field("", description="Name printed on the transfer")
    depositor_account: Optional[str] = Field(None)
    amount: int = Field(..., gt=0, description="Deposited amount in minor units")
    balance_after: Optional[int] = Field(None)
    transaction_date: datetime = Field(..., description="When the bank booked the transaction")
    memo: Optional[str] = Field(None)
    raw_payload: Dict[str, Any] = Field(default_factory=dict, description="Provider body as received")

    @field_validator("transaction_date", mode="before")
    @classmethod
    def normalise_timestamp(cls, v):
        if not isinstance(v, (str, date)) or v == "":
            raise ValueError("transaction date must be an ISO-8601 string or datetime")
        return to_utc(v)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "external_id": self.external_id,
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "depositor_name": self.depositor_name,
            "depositor_account": self.depositor_account,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "transaction_date": self.transaction_date.isoformat(),
            "memo": self.memo,
        }
