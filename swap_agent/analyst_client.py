"""
Client for the external trade recommendation service
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import DecisionServiceError

logger = logging.getLogger(__name__)


class AnalystClient:
    """
    Posts a market context to the recommendation endpoint and returns the
    raw JSON answer. Shape validation happens in the decision engine.
    """

    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 15.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self.session is None or self.session.closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"

            self.session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def close(self):
        """Close the session"""
        if self.session and not self.session.closed:
            await self.session.close()

    async def recommend(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Request a recommendation

        Raises:
            DecisionServiceError: transport failure, non-200 status or a body
                that is not a JSON object
        """
        try:
            session = await self._get_session()
            async with session.post(self.url, json=context) as response:
                if response.status != 200:
                    text = await response.text()
                    raise DecisionServiceError(
                        f"Recommendation service returned {response.status}: {text[:200]}"
                    )
                data = await response.json(content_type=None)
        except DecisionServiceError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise DecisionServiceError(f"Recommendation request failed: {e}") from e

        if not isinstance(data, dict):
            raise DecisionServiceError(f"Unexpected recommendation payload: {type(data).__name__}")
        return data
