"""EV network API client - transport, response handling and retries."""

import asyncio
import json
import sys
from datetime import datetime
from typing import Any

import httpx

from ..models import (
    APIConfiguration,
    AuthenticationError,
    NetworkError,
    NodeNotFoundError,
    RateLimitError,
    TimeoutError,
    TreeQuery,
)
from .rate_limiter import AdaptiveRateLimiter

TREE_ENDPOINT = "/binary/tree/{root_id}/"


def log_event(message: str, component: str = "CLIENT") -> None:
    """Log an event to stderr with timestamp and consistent formatting."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] [{component}] {message}", file=sys.stderr, flush=True)


def _log(message: str, component: str = "CLIENT") -> None:
    log_event(message, component)


class _ClientLogger:
    """Lightweight logger that delegates to log_event.

    FastMCP owns the stdio channel and reconfigures the logging module, so
    client-side diagnostics go straight to stderr instead.
    """

    def __init__(self, component: str = "CLIENT") -> None:
        self._component = component

    def _msg(self, msg: object) -> str:
        try:
            return str(msg)
        except Exception:
            return repr(msg)

    def info(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(self._msg(msg), self._component)

    def warning(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"WARNING: {self._msg(msg)}", self._component)

    def error(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"ERROR: {self._msg(msg)}", self._component)

    def debug(self, msg: object, *args: object, **kwargs: object) -> None:
        _log(f"DEBUG: {self._msg(msg)}", self._component)


class NetworkClientCore:
    """Core client: owns the httpx session and fetches raw tree snapshots."""

    def __init__(
        self,
        config: APIConfiguration,
        rate_limiter: AdaptiveRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.base_url = config.base_url
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.config.api_key.get_secret_value()}",
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "NetworkClientCore":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Map HTTP status codes onto client errors and decode the body."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid API key or unauthorized access")

        if response.status_code == 404:
            path = response.request.url.path.rstrip("/")
            raise NodeNotFoundError(node_id=path.split("/")[-1], message="Tree root not found")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if response.status_code >= 500:
            raise NetworkError(f"Server error: {response.status_code}")

        if response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("detail") or error_data.get("error") or "API request failed"
            except (json.JSONDecodeError, AttributeError):
                message = f"API error: {response.status_code}"
            raise NetworkError(message)

        try:
            data = response.json()
        except json.JSONDecodeError as err:
            raise NetworkError("Invalid response format from API") from err

        if not isinstance(data, dict):
            raise NetworkError("Invalid response format from API: expected an object")
        return data

    async def fetch_tree_payload(
        self, query: TreeQuery, max_retries: int | None = None
    ) -> dict[str, Any]:
        """Fetch the raw RootSnapshot JSON for ``query`` with exponential backoff retry.

        Args:
            query: Root, side filter, page and depth bounds to request
            max_retries: Maximum attempts (defaults to the configured value)
        """
        logger = _ClientLogger()
        max_retries = max_retries or self.config.max_retries
        retry_count = 0
        base_delay = 1.0
        path = TREE_ENDPOINT.format(root_id=query.root_id)

        while retry_count < max_retries:
            if self.config.request_delay:
                await asyncio.sleep(self.config.request_delay)
            if self.rate_limiter:
                await self.rate_limiter.acquire()

            try:
                response = await self.client.get(path, params=query.to_params())
                data = await self._handle_response(response)
                if self.rate_limiter:
                    self.rate_limiter.on_success()

                # Some deployments wrap the snapshot
                for key in ("data", "tree"):
                    inner = data.get(key)
                    if isinstance(inner, dict) and "left_child" not in data:
                        return inner
                return data

            except RateLimitError as e:
                retry_count += 1
                if self.rate_limiter:
                    self.rate_limiter.on_rate_limit(e.retry_after)
                retry_after = e.retry_after or (base_delay * (2 ** retry_count))
                logger.warning(
                    f"Rate limited on tree fetch for root {query.root_id}. "
                    f"Retry after {retry_after}s. Attempt {retry_count}/{max_retries}"
                )
                if retry_count < max_retries:
                    await asyncio.sleep(retry_after)
                else:
                    raise

            except NetworkError as e:
                retry_count += 1
                logger.warning(
                    f"Network error on tree fetch for root {query.root_id}: {e}. "
                    f"Retry {retry_count}/{max_retries}"
                )
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise

            except httpx.TransportError as err:
                retry_count += 1
                logger.warning(f"Transport error: {err!r}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                elif isinstance(err, httpx.TimeoutException):
                    raise TimeoutError("fetch_tree") from err
                else:
                    raise NetworkError(f"Transport failure: {err}") from err

        raise NetworkError("fetch_tree failed after maximum retries")
