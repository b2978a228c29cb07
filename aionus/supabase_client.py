"""Supabase PostgREST client wrapper with error handling."""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from aionus import config
from aionus.errors import ConfigurationError, UpstreamError

logger = structlog.get_logger()


class SupabaseClient:
    """Async client for Supabase's REST interface (tables and RPC functions)."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Supabase client.

        Args:
            url: Project URL (defaults to config.SUPABASE_URL)
            service_key: Service role key (defaults to config.SUPABASE_SERVICE_ROLE_KEY)
            timeout: Per-request timeout in seconds (defaults to config.HTTP_TIMEOUT)
            transport: Optional httpx transport, used by tests to fake the network
        """
        self._url = url
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return (self._url or config.SUPABASE_URL).rstrip("/")

    @property
    def service_key(self) -> str:
        return self._service_key or config.SUPABASE_SERVICE_ROLE_KEY

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else config.HTTP_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.url and self.service_key)

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        """Send a request to ``{url}/rest/v1/{path}``.

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            ConfigurationError: If URL or service key is missing (no call is made)
            UpstreamError: On HTTP errors, timeouts or invalid JSON
        """
        if not self.configured:
            raise ConfigurationError(
                "Supabase not configured: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required"
            )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                logger.debug("supabase_request", method=method, path=path)

                response = await client.request(
                    method,
                    f"{self.url}/rest/v1/{path}",
                    params=params,
                    json=json,
                    headers=self._headers(prefer),
                )
                response.raise_for_status()

                if not response.content:
                    return None
                return response.json()

        except httpx.TimeoutException as e:
            logger.error("supabase_timeout", path=path, timeout=self.timeout)
            raise UpstreamError(f"Supabase request timed out: {e}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(
                "supabase_http_error",
                path=path,
                status_code=status_code,
                body=e.response.text[:200],
            )
            raise UpstreamError(
                f"Supabase returned HTTP {status_code} for {path}",
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.error("supabase_connection_error", error=str(e), url=self.url)
            raise UpstreamError(f"Supabase unreachable: {e}") from e
        except ValueError as e:
            logger.error("supabase_invalid_json", path=path, error=str(e))
            raise UpstreamError(
                f"Supabase returned invalid JSON for {path}",
                status_code=response.status_code,
            ) from e

    async def rpc(self, function: str, args: Dict[str, Any]) -> Any:
        """Call a Postgres function exposed through PostgREST."""
        return await self.request("POST", f"rpc/{function}", json=args)

    async def select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """Select rows from a table using PostgREST query parameters."""
        return await self.request("GET", table, params=params) or []

    async def insert(self, table: str, rows: Any) -> List[Dict[str, Any]]:
        """Insert one row or a list of rows and return what was stored."""
        return await self.request(
            "POST", table, json=rows, prefer="return=representation"
        ) or []

    async def delete(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        """Delete rows matching the filter and return what was removed."""
        return await self.request(
            "DELETE", table, params=params, prefer="return=representation"
        ) or []


# Global client instance
supabase_client = SupabaseClient()
