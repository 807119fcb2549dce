"""Payout (merchant withdrawal) data model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class PayoutStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Payout:
    """A merchant's withdrawal request, decided once by an admin."""

    id: int
    merchant_id: str
    amount: float
    currency: str
    status: PayoutStatus = PayoutStatus.PENDING
    notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = PayoutStatus(self.status)
        self.amount = float(self.amount)
        self.merchant_id = str(self.merchant_id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Payout':
        return cls(
            id=data['id'],
            merchant_id=data['merchant_id'],
            amount=data['amount'],
            currency=data['currency'],
            status=data.get('status') or PayoutStatus.PENDING,
            notes=data.get('notes'),
            processed_at=data.get('processed_at'),
            created_at=data.get('created_at')
        )

    def is_pending(self) -> bool:
        return self.status == PayoutStatus.PENDING
