"""
Email Notification Service.

Sends notification emails through the Resend HTTP API. Delivery is
best-effort: failures are logged and reported as False, never raised.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

logger = logging.getLogger(__name__)


class EmailService:
    """
    Service for sending notification emails.

    Disabled when no API key is configured; send() then returns False
    without making a request.
    """

    def __init__(
        self,
        api_key: str,
        from_email: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: int = 10
    ):
        """
        Initialize the email service.

        Args:
            api_key: Resend API key (empty disables email)
            from_email: Sender address
            api_url: Resend emails endpoint
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._stats = {"sent": 0, "failed": 0, "skipped": 0}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def start(self) -> None:
        """Start the email service."""
        if not self.enabled:
            logger.warning("RESEND_API_KEY not set, notification emails are disabled")
            return

        logger.info("Starting email service...")
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )

    async def stop(self) -> None:
        """Stop the email service."""
        if self._session:
            await self._session.close()
            self._session = None

    async def send(self, to: List[str], subject: str, html: str) -> bool:
        """
        Send one email to a list of recipients.

        Args:
            to: Recipient addresses
            subject: Subject line
            html: Message body

        Returns:
            True if the provider accepted the message
        """
        if not self.enabled or not to:
            self._stats["skipped"] += 1
            return False

        if not self._session:
            logger.error("Email session not initialized")
            self._stats["failed"] += 1
            return False

        try:
            async with self._session.post(
                self.api_url,
                json={
                    "from": self.from_email,
                    "to": to,
                    "subject": subject,
                    "html": html
                },
                headers={'Authorization': f'Bearer {self.api_key}'}
            ) as response:
                if 200 <= response.status < 300:
                    self._stats["sent"] += 1
                    return True

                body = await response.text(errors='replace')
                logger.warning(
                    f"Email provider rejected '{subject}' "
                    f"({len(to)} recipients): {response.status} {body[:200]}"
                )

        except aiohttp.ClientError as e:
            logger.warning(f"Network error sending email: {e}")
        except asyncio.TimeoutError:
            logger.warning(f"Timeout sending email '{subject}'")

        self._stats["failed"] += 1
        return False

    def get_stats(self) -> dict:
        return {"enabled": self.enabled, **self._stats}
