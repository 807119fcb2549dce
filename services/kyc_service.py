"""
KYC Review Service.

Admin approval or rejection of a merchant's verification. Approval
issues the merchant's live API key pair.
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from database.db import Database
from errors import DomainError
from models.merchant import Merchant, VerificationStatus
from models.payment import PaymentMode
from .outbox import NotificationOutbox

logger = logging.getLogger(__name__)

LIVE_PUBLIC_PREFIX = 'pssd_live_pk_'
LIVE_SECRET_PREFIX = 'pssd_live_sk_'


def generate_key(prefix: str, length: int = 24) -> str:
    """
    Generate a random API key.

    Args:
        prefix: Key prefix identifying its kind
        length: Number of random bytes

    Returns:
        Prefix followed by hex-encoded random bytes
    """
    return f"{prefix}{secrets.token_hex(length)}"


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode('utf-8')).hexdigest()


@dataclass
class KycDecision:
    merchant_id: str
    approved: bool
    live_public_key: Optional[str] = None
    live_secret_key_once: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'ok': True, 'approved': self.approved}
        if self.approved:
            data['live_public_key'] = self.live_public_key
            data['live_secret_key_once'] = self.live_secret_key_once
        return data


class KycService:
    """
    Flips a merchant's verification status and notifies the merchant once.

    Every decision revokes the merchant's earlier live keys. Approval then
    issues a fresh pair.
    """

    def __init__(self, db: Database, outbox: Optional[NotificationOutbox] = None):
        self.db = db
        self.outbox = outbox

    async def list_pending(self) -> List[Merchant]:
        """Merchants waiting for a verification decision."""
        rows = await self.db.list_merchants_by_status(VerificationStatus.PENDING.value)
        return [Merchant.from_dict(row) for row in rows]

    async def decide(
        self,
        merchant_id: str,
        approve: bool,
        reviewer: Optional[str] = None,
        notes: Optional[str] = None
    ) -> KycDecision:
        """
        Record an admin's verification decision.

        Args:
            merchant_id: Merchant under review
            approve: True to approve, False to reject
            reviewer: Reviewing admin id, for the log
            notes: Optional free-text note, shown to the merchant on rejection

        Returns:
            KycDecision; on approval it carries the live secret key, which
            is not stored and cannot be retrieved again

        Raises:
            DomainError: merchant_not_found
        """
        merchant_data = await self.db.get_merchant(merchant_id)
        if not merchant_data:
            raise DomainError('merchant_not_found')

        revoked = await self.db.revoke_api_keys(merchant_id, PaymentMode.LIVE.value)
        if revoked:
            logger.info(f"Revoked {revoked} live key(s) of merchant {merchant_id}")

        if not approve:
            await self.db.update_verification_status(
                merchant_id, VerificationStatus.REJECTED.value, notes
            )
            logger.info(f"Merchant {merchant_id} rejected by admin {reviewer}")
            await self._notify('kyc_rejected', merchant_id, {'reason': notes or ''})
            return KycDecision(merchant_id=merchant_id, approved=False)

        public_key = generate_key(LIVE_PUBLIC_PREFIX)
        secret_key = generate_key(LIVE_SECRET_PREFIX)

        await self.db.update_verification_status(
            merchant_id, VerificationStatus.APPROVED.value, notes
        )
        await self.db.create_api_key(
            merchant_id=merchant_id,
            mode=PaymentMode.LIVE.value,
            public_key=public_key,
            secret_hash=hash_secret(secret_key)
        )
        logger.info(f"Merchant {merchant_id} approved by admin {reviewer}, live keys issued")

        await self._notify('kyc_approved', merchant_id, {})

        return KycDecision(
            merchant_id=merchant_id,
            approved=True,
            live_public_key=public_key,
            live_secret_key_once=secret_key
        )

    async def _notify(self, event: str, merchant_id: str, payload: dict) -> None:
        if self.outbox is not None:
            await self.outbox.enqueue(event, merchant_id=merchant_id, payload=payload)
