"""
Backend client for the managed OpaY backend.

Wraps the four surfaces the wallet talks to:
    /rest/v1/<table>        generated REST layer over Postgres (PostgREST filters)
    /rest/v1/rpc/<name>     stored procedures
    /storage/v1/object/...  receipt and ID-document buckets
    /functions/v1/<name>    serverless functions (scrape-aliexpress, telegram-notify)

Every call is a single awaited request with a timeout. No retries: a failure
surfaces as BackendError and the caller decides what to tell the user.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiohttp

from config import Config
from utils.exception_handler import BackendError

logger = logging.getLogger(__name__)


# ===== FILTER HELPERS =====

def eq(value: Any) -> str:
    return f"eq.{_format_value(value)}"


def neq(value: Any) -> str:
    return f"neq.{_format_value(value)}"


def gte(value: Any) -> str:
    return f"gte.{_format_value(value)}"


def lte(value: Any) -> str:
    return f"lte.{_format_value(value)}"


def in_(values: Iterable[Any]) -> str:
    return "in.(" + ",".join(_format_value(v) for v in values) + ")"


def or_(*conditions: str) -> str:
    """or_('sender_id.eq.X', 'recipient_id.eq.X') -> '(sender_id.eq.X,recipient_id.eq.X)'"""
    return "(" + ",".join(conditions) + ")"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """'0-9/42' -> 42, '*/0' -> 0"""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[-1]
    return int(total) if total.isdigit() else None


# ===== CLIENT =====

class BackendClient:
    """Async client for tables, RPC, storage and functions"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ):
        self.base_url = (base_url or Config.SUPABASE_URL).rstrip("/")
        self.api_key = api_key or Config.backend_key()
        self.access_token = access_token
        self.timeout = aiohttp.ClientTimeout(
            total=timeout_seconds or Config.BACKEND_TIMEOUT_SECONDS
        )

    def with_token(self, access_token: Optional[str]) -> "BackendClient":
        """Same backend, calls made as the given user"""
        return BackendClient(
            base_url=self.base_url,
            api_key=self.api_key,
            access_token=access_token,
            timeout_seconds=int(self.timeout.total),
        )

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key or "",
            "Authorization": f"Bearer {self.access_token or self.api_key or ''}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any, Dict[str, str]]:
        """Perform one request; returns (status, decoded body, response headers)"""
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(headers=self._headers(headers)) as session:
                async with session.request(
                    method, url, params=params, json=json, data=data, timeout=self.timeout
                ) as response:
                    body = await self._decode(response)
                    response_headers = {k.lower(): v for k, v in response.headers.items()}
                    if response.status >= 400:
                        raise self._error_from(response.status, body, path)
                    return response.status, body, response_headers
        except BackendError:
            raise
        except aiohttp.ClientError as e:
            logger.error(f"❌ Backend connection error on {method} {path}: {e}")
            raise BackendError(f"connection error: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"❌ Backend timeout on {method} {path}")
            raise BackendError("request timed out") from e

    @staticmethod
    async def _decode(response) -> Any:
        text = await response.text()
        if not text:
            return None
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            return await response.json(content_type=None)
        return text

    @staticmethod
    def _error_from(status: int, body: Any, path: str) -> BackendError:
        code = None
        message = f"HTTP {status}"
        if isinstance(body, dict):
            code = body.get("code") or body.get("error")
            message = body.get("message") or body.get("error_description") or body.get("error") or message
        elif isinstance(body, str) and body:
            message = body[:200]
        logger.warning(f"⚠️ Backend {path} answered {status}: {message}")
        return BackendError(str(message), status=status, code=code)

    # ----- tables -----

    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        _, body, _ = await self._request("GET", f"/rest/v1/{table}", params=params)
        return body if isinstance(body, list) else []

    async def select_one(
        self,
        table: str,
        filters: Optional[Dict[str, str]] = None,
        columns: str = "*",
        order: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """First matching row or None (maybeSingle)"""
        rows = await self.select(table, filters, columns=columns, order=order, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, filters: Optional[Dict[str, str]] = None) -> int:
        params: Dict[str, Any] = {"select": "id", "limit": "1"}
        params.update(filters or {})
        _, body, headers = await self._request(
            "GET", f"/rest/v1/{table}", params=params, headers={"Prefer": "count=exact"}
        )
        total = parse_content_range(headers.get("content-range"))
        if total is None:
            return len(body) if isinstance(body, list) else 0
        return total

    async def insert(
        self,
        table: str,
        rows: Any,
        upsert: bool = False,
        on_conflict: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        prefer = "return=representation"
        if upsert:
            prefer += ",resolution=merge-duplicates"
        params = {"on_conflict": on_conflict} if on_conflict else None
        _, body, _ = await self._request(
            "POST", f"/rest/v1/{table}", params=params, json=rows, headers={"Prefer": prefer}
        )
        return body if isinstance(body, list) else []

    async def update(
        self, table: str, values: Dict[str, Any], filters: Dict[str, str]
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("update without filters would touch every row")
        _, body, _ = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return body if isinstance(body, list) else []

    # ----- rpc -----

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        logger.info(f"📞 RPC {function}")
        _, body, _ = await self._request("POST", f"/rest/v1/rpc/{function}", json=params or {})
        return body

    # ----- storage -----

    async def upload(
        self, bucket: str, path: str, content: bytes, content_type: str, upsert: bool = False
    ) -> str:
        headers = {"Content-Type": content_type, "x-upsert": "true" if upsert else "false"}
        await self._request(
            "POST", f"/storage/v1/object/{bucket}/{path}", data=content, headers=headers
        )
        logger.info(f"📤 Uploaded {len(content)} bytes to {bucket}/{path}")
        return path

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    # ----- functions -----

    async def invoke(self, function: str, body: Optional[Dict[str, Any]] = None) -> Any:
        _, payload, _ = await self._request("POST", f"/functions/v1/{function}", json=body or {})
        return payload

    # ----- auth -----

    async def get_user(self) -> Dict[str, Any]:
        """Identity behind the current access token"""
        if not self.access_token:
            raise BackendError("no access token", status=401)
        _, body, _ = await self._request("GET", "/auth/v1/user")
        if not isinstance(body, dict) or "id" not in body:
            raise BackendError("access token did not resolve to a user", status=401)
        return body


# Global client (anon key); per-user clients come from with_token()
_backend_client: Optional[BackendClient] = None


def get_backend_client() -> BackendClient:
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient()
    return _backend_client
