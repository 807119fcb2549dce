"""
Payment Processor Client.

Thin wrapper around the Flutterwave v3 REST API used to initiate charges.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from errors import ProviderUnreachable

logger = logging.getLogger(__name__)


@dataclass
class ProviderResponse:
    """HTTP status and raw JSON body returned by the processor."""

    status: int
    data: Any

    @property
    def ok(self) -> bool:
        return self.status < 400

    @property
    def reference(self) -> Optional[str]:
        """Transaction reference echoed back by the processor, if any."""
        if isinstance(self.data, dict) and isinstance(self.data.get('data'), dict):
            return self.data['data'].get('tx_ref')
        return None


class ProcessorClient:
    """
    Client for the card/mobile-money processor.

    One request per call, no retries. Transport failures are raised as
    ProviderUnreachable; HTTP error statuses are returned to the caller.
    """

    def __init__(self, base_url: str, timeout: int = 30):
        """
        Initialize the client.

        Args:
            base_url: API root, e.g. https://api.flutterwave.com/v3
            timeout: Total request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Open the HTTP session."""
        logger.info("Starting processor client...")
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def create_charge(self, secret: str, body: Dict[str, Any]) -> ProviderResponse:
        """
        Initiate a hosted-checkout charge.

        Args:
            secret: Test or live secret key
            body: Charge request (amount, currency, tx_ref, redirect_url, customer)

        Returns:
            ProviderResponse with the raw processor payload

        Raises:
            ProviderUnreachable: On network errors, timeouts or undecodable bodies
        """
        return await self._post('payments', secret, body)

    async def _post(self, path: str, secret: str, body: Dict[str, Any]) -> ProviderResponse:
        if not self._session:
            raise ProviderUnreachable("Session not initialized")

        url = f"{self.base_url}/{path}"
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {secret}'
        }

        try:
            async with self._session.post(url, json=body, headers=headers) as response:
                data = await response.json(content_type=None)
                logger.info(f"Processor answered {response.status} for {path}")
                return ProviderResponse(status=response.status, data=data)

        except aiohttp.ClientError as e:
            logger.error(f"Network error calling processor: {e}")
            raise ProviderUnreachable(str(e)) from e
        except asyncio.TimeoutError as e:
            logger.error(f"Timeout calling processor at {url}")
            raise ProviderUnreachable("Request timeout") from e
        except ValueError as e:
            logger.error(f"Undecodable processor response: {e}")
            raise ProviderUnreachable(f"Invalid response body: {e}") from e
