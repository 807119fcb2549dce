"""
Shared fixtures for the gateway tests.

Every test gets a fresh in-memory SQLite database with the full schema.
The processor and the email provider are replaced by recording fakes.
"""

from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from config import ProcessorConfig
from database.db import Database
from services.outbox import NotificationOutbox
from services.processor_client import ProviderResponse


class FakeProcessor:
    """Records charge requests and answers with a canned response or error."""

    def __init__(self, response: Optional[ProviderResponse] = None, error: Optional[Exception] = None):
        self.response = response or ProviderResponse(status=200, data={
            'status': 'success',
            'message': 'Hosted Link',
            'data': {'link': 'https://checkout.flutterwave.test/pay/abc'}
        })
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def create_charge(self, secret: str, body: Dict[str, Any]) -> ProviderResponse:
        self.calls.append({'secret': secret, 'body': body})
        if self.error is not None:
            raise self.error
        return self.response


class FakeEmailService:
    """Records sent emails instead of calling the provider."""

    def __init__(self, accept: bool = True, error: Optional[Exception] = None):
        self.accept = accept
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    @property
    def enabled(self) -> bool:
        return True

    async def send(self, to: List[str], subject: str, html: str) -> bool:
        self.sent.append({'to': list(to), 'subject': subject, 'html': html})
        if self.error is not None:
            raise self.error
        return self.accept

    def get_stats(self) -> dict:
        return {"enabled": True, "sent": len(self.sent)}


def processor_config(test_secret: str = '', live_secret: str = '', webhook_hash: str = '') -> ProcessorConfig:
    return ProcessorConfig(
        base_url='https://api.flutterwave.test/v3',
        test_secret=test_secret,
        live_secret=live_secret,
        webhook_hash=webhook_hash
    )


@pytest_asyncio.fixture
async def db():
    database = Database('sqlite:///:memory:')
    await database.connect()
    await database.init_schema()
    yield database
    await database.disconnect()


@pytest.fixture
def outbox(db):
    return NotificationOutbox(db)


@pytest.fixture
def fake_processor():
    return FakeProcessor()


@pytest.fixture
def fake_email():
    return FakeEmailService()


async def count_rows(db: Database, table: str) -> int:
    row = await db.fetch_one(f"SELECT COUNT(*) AS n FROM {table}")
    return row['n']


async def outbox_events(db: Database) -> List[str]:
    rows = await db.fetch_all("SELECT event FROM notification_outbox ORDER BY id")
    return [row['event'] for row in rows]
