"""
Merchant data model.

Represents a seller account that receives payments through PaySSD.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class VerificationStatus(str, Enum):
    """Admin-controlled KYC state of a merchant."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AccountType(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"


@dataclass
class Merchant:
    """
    Represents a merchant account.

    Attributes:
        id: Merchant identifier
        email: Contact address used for notifications
        business_name: Human-readable merchant name
        account_type: Personal or business account
        verification_status: KYC state, gates live payments
        verification_notes: Free-text note left by the reviewing admin
        balance: Funds available for payout
        created_at: Timestamp when merchant was registered
        updated_at: Timestamp of last update
    """

    id: str
    email: str
    business_name: Optional[str] = None
    account_type: AccountType = AccountType.PERSONAL
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verification_notes: Optional[str] = None
    balance: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Normalize enum fields coming from database rows."""
        if isinstance(self.account_type, str):
            self.account_type = AccountType(self.account_type)
        if isinstance(self.verification_status, str):
            self.verification_status = VerificationStatus(self.verification_status)
        self.id = str(self.id)
        self.balance = float(self.balance or 0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Merchant':
        """
        Create Merchant from dictionary (e.g., database row).

        Args:
            data: Dictionary with merchant data

        Returns:
            Merchant instance
        """
        return cls(
            id=data['id'],
            email=data.get('email') or '',
            business_name=data.get('business_name'),
            account_type=data.get('account_type') or AccountType.PERSONAL,
            verification_status=data.get('verification_status') or VerificationStatus.PENDING,
            verification_notes=data.get('verification_notes'),
            balance=data.get('balance') or 0,
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert Merchant to dictionary.

        Returns:
            Dictionary representation
        """
        return {
            'id': self.id,
            'email': self.email,
            'business_name': self.business_name,
            'account_type': self.account_type.value,
            'verification_status': self.verification_status.value,
            'verification_notes': self.verification_notes,
            'balance': self.balance,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }

    def is_verified(self) -> bool:
        """Check if an admin approved the merchant's verification."""
        return self.verification_status == VerificationStatus.APPROVED

    def can_accept_payments(self) -> bool:
        """Rejected merchants are refused at checkout."""
        return self.verification_status != VerificationStatus.REJECTED

    def __repr__(self) -> str:
        return (
            f"Merchant(id={self.id}, "
            f"status={self.verification_status.value}, "
            f"balance={self.balance})"
        )


def _iso(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
