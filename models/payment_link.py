"""
Payment link data model.

A payment link is a shareable checkout code for a fixed title and
amount. Payments made through it carry its code.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .merchant import _iso

LINK_CODE_PREFIX = 'PL'

_CODE_ALPHABET = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    digits = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_CODE_ALPHABET[remainder])
        if not value:
            return ''.join(reversed(digits))


def generate_link_code(timestamp_ms: int, random_length: int = 6) -> str:
    """
    Build a link code from the creation time and a random suffix.

    Args:
        timestamp_ms: Creation time in milliseconds since the epoch
        random_length: Number of random characters appended

    Returns:
        Code such as PLLOYW3V5C7K2M9Q
    """
    suffix = ''.join(secrets.choice(_CODE_ALPHABET) for _ in range(random_length))
    return f"{LINK_CODE_PREFIX}{_base36(timestamp_ms)}{suffix}"


@dataclass
class PaymentLink:
    """
    A merchant's reusable checkout link.

    Attributes:
        link_code: Public code customers open at checkout
        current_uses: Payments created through this link so far
        is_active: Inactive links cannot be opened or counted
    """

    id: int
    merchant_id: str
    title: str
    amount: float
    currency: str
    link_code: str
    description: Optional[str] = None
    is_active: bool = True
    current_uses: int = 0
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.merchant_id = str(self.merchant_id)
        self.amount = float(self.amount)
        self.is_active = bool(self.is_active)
        self.current_uses = int(self.current_uses or 0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PaymentLink':
        return cls(
            id=data['id'],
            merchant_id=data['merchant_id'],
            title=data['title'],
            amount=data['amount'],
            currency=data['currency'],
            link_code=data['link_code'],
            description=data.get('description'),
            is_active=data.get('is_active', True),
            current_uses=data.get('current_uses') or 0,
            created_at=data.get('created_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'merchant_id': self.merchant_id,
            'title': self.title,
            'description': self.description,
            'amount': self.amount,
            'currency': self.currency,
            'link_code': self.link_code,
            'is_active': self.is_active,
            'current_uses': self.current_uses,
            'created_at': _iso(self.created_at)
        }
