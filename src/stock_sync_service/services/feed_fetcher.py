"""HTTP retrieval of the CSV stock feed."""

import httpx
import structlog

from shared.constants import FEED_FETCH_TIMEOUT
from stock_sync_service.exceptions import (
    ConfigError,
    EmptyFeedError,
    HttpError,
    NetworkError,
)

logger = structlog.get_logger()


class CsvFeedFetcher:
    """Downloads the raw feed body with a bounded timeout."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport

    async def fetch(
        self,
        url: str,
        timeout: float = FEED_FETCH_TIMEOUT,
        verify_tls: bool = True,
    ) -> bytes:
        """
        GET the feed and return its body.

        Content type is ignored; the parser sniffs the format from the bytes.

        Raises:
            ConfigError: url is empty
            NetworkError: connection, TLS or timeout failure
            HttpError: any status other than 200
            EmptyFeedError: 200 with an empty body
        """
        if not url or not url.strip():
            raise ConfigError("CSV URL is not configured.")

        if not verify_tls:
            logger.warning("TLS verification disabled for feed fetch", url=url)

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                verify=verify_tls,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(url.strip())
        except httpx.InvalidURL as e:
            raise ConfigError(f"CSV URL is invalid: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Feed fetch failed", url=url, error=str(e))
            raise NetworkError(f"Failed to fetch CSV: {e}") from e

        if response.status_code != 200:
            logger.error("Feed returned unexpected status", url=url, status=response.status_code)
            raise HttpError(response.status_code)

        body = response.content
        if not body:
            raise EmptyFeedError()

        logger.info("Feed fetched", url=url, bytes=len(body))
        return body
