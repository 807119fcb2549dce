"""
Payment Link Service.

Merchants create shareable checkout links. Customers open a link by its
code, and every payment made through it is counted.
"""

import logging
import time
from typing import Callable, List, Optional

from database.db import Database
from errors import DomainError
from models.merchant import Merchant
from models.payment_link import PaymentLink, generate_link_code
from models.requests import PaymentLinkRequest
from .outbox import NotificationOutbox

logger = logging.getLogger(__name__)


class PaymentLinkService:
    """Creates, resolves and deactivates payment links."""

    def __init__(
        self,
        db: Database,
        outbox: Optional[NotificationOutbox] = None,
        clock: Callable[[], float] = time.time
    ):
        self.db = db
        self.outbox = outbox
        self._clock = clock

    async def create(self, request: PaymentLinkRequest) -> PaymentLink:
        """
        Create an active link for a merchant.

        Rejected merchants cannot take payments, so they cannot create
        links either.

        Raises:
            DomainError: merchant_not_found or payments_not_allowed
        """
        merchant_data = await self.db.get_merchant(request.merchant_id)
        if not merchant_data:
            raise DomainError('merchant_not_found')

        merchant = Merchant.from_dict(merchant_data)
        if not merchant.can_accept_payments():
            raise DomainError('payments_not_allowed')

        link = PaymentLink.from_dict(await self.db.create_payment_link(
            merchant_id=merchant.id,
            title=request.title,
            amount=request.amount,
            currency=request.currency,
            link_code=generate_link_code(int(self._clock() * 1000)),
            description=request.description
        ))
        logger.info(f"Payment link {link.link_code} created by merchant {merchant.id}")

        if self.outbox is not None:
            await self.outbox.enqueue('payment_link_created', merchant_id=merchant.id, payload={
                'title': link.title,
                'amount': link.amount
            })

        return link

    async def get(self, link_code: str) -> PaymentLink:
        """
        Resolve an active link by its code.

        Raises:
            DomainError: payment_link_not_found, also for deactivated links
        """
        data = await self.db.get_payment_link(link_code)
        if not data:
            raise DomainError('payment_link_not_found')

        link = PaymentLink.from_dict(data)
        if not link.is_active:
            raise DomainError('payment_link_not_found')
        return link

    async def list_for_merchant(self, merchant_id: str) -> List[PaymentLink]:
        rows = await self.db.list_payment_links(merchant_id)
        return [PaymentLink.from_dict(row) for row in rows]

    async def deactivate(self, link_code: str) -> None:
        """
        Raises:
            DomainError: payment_link_not_found
        """
        if not await self.db.deactivate_payment_link(link_code):
            raise DomainError('payment_link_not_found')
        logger.info(f"Payment link {link_code} deactivated")
