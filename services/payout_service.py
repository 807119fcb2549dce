"""
Payout Service.

Merchant withdrawal requests and their one-time admin decision.
"""

import logging
from typing import Optional

from database.db import Database
from errors import DomainError
from models.merchant import Merchant
from models.payout import Payout, PayoutStatus
from .outbox import NotificationOutbox

logger = logging.getLogger(__name__)


class PayoutService:
    """
    Creates and settles payouts.

    Approving a payout debits the merchant's balance, which never drops
    below zero. A payout is decided at most once.
    """

    def __init__(self, db: Database, outbox: Optional[NotificationOutbox] = None):
        self.db = db
        self.outbox = outbox

    async def request_payout(self, merchant_id: str, amount: float, currency: str = 'SSP') -> Payout:
        """
        Create a pending payout for a verified merchant.

        Raises:
            DomainError: merchant_not_found, kyc_required or
                insufficient_balance
        """
        merchant_data = await self.db.get_merchant(merchant_id)
        if not merchant_data:
            raise DomainError('merchant_not_found')

        merchant = Merchant.from_dict(merchant_data)
        if not merchant.is_verified():
            raise DomainError('kyc_required', "Payouts require an approved verification")

        if merchant.balance < amount:
            raise DomainError(
                'insufficient_balance',
                f"Insufficient balance. Available: {merchant.balance:.2f}"
            )

        payout = Payout.from_dict(await self.db.create_payout(merchant.id, amount, currency))
        logger.info(f"Payout {payout.id} requested by merchant {merchant.id}: {amount} {currency}")

        if self.outbox is not None:
            await self.outbox.enqueue('payout_requested', merchant_id=merchant.id, payload={
                'amount': amount
            })

        return payout

    async def decide(self, payout_id: int, approve: bool, notes: Optional[str] = None) -> Payout:
        """
        Approve or reject a pending payout.

        The balance is re-checked on approval, since it may have changed
        after the request was made.

        Raises:
            DomainError: payout_not_found, payout_already_processed or
                insufficient_balance
        """
        payout_data = await self.db.get_payout(payout_id)
        if not payout_data:
            raise DomainError('payout_not_found')

        payout = Payout.from_dict(payout_data)
        if not payout.is_pending():
            raise DomainError('payout_already_processed')

        status = PayoutStatus.COMPLETED if approve else PayoutStatus.FAILED
        notes = notes or ('Approved by admin' if approve else 'Rejected by admin')

        if approve and not await self.db.debit_merchant_balance(payout.merchant_id, payout.amount):
            logger.warning(f"Payout {payout.id} exceeds the balance of merchant {payout.merchant_id}")
            raise DomainError('insufficient_balance', "Balance no longer covers this payout")

        if not await self.db.settle_payout(payout.id, status.value, notes):
            if approve:
                # Another decision won the race; give the debit back
                await self.db.adjust_merchant_balance(payout.merchant_id, payout.amount)
            raise DomainError('payout_already_processed')

        logger.info(f"Payout {payout.id} {status.value}")
        return Payout.from_dict(await self.db.get_payout(payout.id))
