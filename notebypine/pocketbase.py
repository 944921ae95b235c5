"""
Async PocketBase REST client.

PocketBase is the only datastore: every collection read and write goes
through this client as plain HTTP/JSON. The client authenticates as an
admin (superuser) lazily on first use and re-authenticates once when a
token expires.

Typical usage:
    from notebypine.database import get_database
    pb = get_database()
    page = await pb.list_records("incidents", filter=pb_like("title", "timeout"))
"""

import logging
import re
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx

from notebypine.utils.errors import DatabaseError, PocketBaseError

logger = logging.getLogger(__name__)

# PocketBase >= 0.23 moved admins into the _superusers collection; older
# servers still expose /api/admins.
_AUTH_PATHS = (
    "/api/collections/_superusers/auth-with-password",
    "/api/admins/auth-with-password",
)

MAX_PER_PAGE = 1000

_LIKE_SPECIAL = re.compile(r"([\\%_])")


# ============================================================
# Filter helpers
# ============================================================
def pb_quote(value: Any) -> str:
    """Quote a value as a PocketBase filter string literal."""
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def pb_eq(field: str, value: Any) -> str:
    return f"{field} = {pb_quote(value)}"


def pb_neq(field: str, value: Any) -> str:
    return f"{field} != {pb_quote(value)}"


def pb_like(field: str, value: Any) -> str:
    """Case-insensitive substring match (PocketBase ``~`` operator).

    PocketBase only wraps the operand in ``%`` when it holds none, so a
    value containing ``%`` is escaped and wrapped here instead.
    """
    text = str(value)
    if "%" in text:
        text = "%" + _LIKE_SPECIAL.sub(r"\\\1", text) + "%"
    return f"{field} ~ {pb_quote(text)}"


def pb_and(*parts: Optional[str]) -> str:
    present = [p for p in parts if p]
    if len(present) <= 1:
        return present[0] if present else ""
    return " && ".join(f"({p})" for p in present)


def pb_or(*parts: Optional[str]) -> str:
    present = [p for p in parts if p]
    if len(present) <= 1:
        return present[0] if present else ""
    return "(" + " || ".join(present) + ")"


def pb_in(field: str, values: Iterable[Any]) -> str:
    """Match any of the given values (expanded to an OR chain)."""
    return pb_or(*(pb_eq(field, v) for v in values))


class PocketBaseClient:
    """
    Thin async wrapper around the PocketBase records API.

    Args:
        base_url: PocketBase server URL, e.g. http://127.0.0.1:8090.
        admin_email: Superuser identity used for authentication.
        admin_password: Superuser password.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass a MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        admin_email: str,
        admin_password: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._admin_email = admin_email
        self._admin_password = admin_password
        self._token: Optional[str] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------
    # Authentication / health
    # ------------------------------------------------------------
    async def authenticate(self) -> str:
        """Authenticate as admin and cache the bearer token.

        Returns:
            The auth token.

        Raises:
            DatabaseError: If PocketBase is unreachable or rejects the login.
        """
        body = {"identity": self._admin_email, "password": self._admin_password}
        last_status = None
        for path in _AUTH_PATHS:
            try:
                response = await self._client.post(path, json=body)
            except httpx.HTTPError as e:
                raise DatabaseError(
                    f"PocketBase is not reachable at {self.base_url}: {e}"
                ) from e
            if response.status_code == 404:
                last_status = 404
                continue
            if response.status_code != 200:
                last_status = response.status_code
                break
            self._token = response.json().get("token")
            logger.info("PocketBase authenticated successfully")
            return self._token

        self._token = None
        raise DatabaseError(
            f"PocketBase admin authentication failed (status {last_status})",
            status_code=502,
        )

    async def verify_admin(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Check admin credentials without touching the client's own token.

        Returns:
            The admin record on success, None when the credentials are rejected.

        Raises:
            DatabaseError: If PocketBase is unreachable.
        """
        body = {"identity": email, "password": password}
        for path in _AUTH_PATHS:
            try:
                response = await self._client.post(path, json=body)
            except httpx.HTTPError as e:
                raise DatabaseError(
                    f"PocketBase is not reachable at {self.base_url}: {e}"
                ) from e
            if response.status_code == 404:
                continue
            if response.status_code != 200:
                return None
            data = response.json()
            return data.get("record") or data.get("admin") or {"email": email}
        return None

    async def health(self) -> bool:
        """Return True when PocketBase answers its health endpoint."""
        try:
            response = await self._client.get("/api/health")
        except httpx.HTTPError as e:
            logger.warning(f"PocketBase health check failed: {e}")
            return False
        return response.status_code == 200

    async def ping(self) -> float:
        """Health check returning round-trip time in milliseconds.

        Raises:
            DatabaseError: If PocketBase is down.
        """
        start = time.perf_counter()
        if not await self.health():
            raise DatabaseError("PocketBase health check failed")
        return (time.perf_counter() - start) * 1000

    # ------------------------------------------------------------
    # Low-level request
    # ------------------------------------------------------------
    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send an authenticated request and decode the JSON body.

        Re-authenticates once if PocketBase answers 401.

        Raises:
            PocketBaseError: On any non-2xx response.
            DatabaseError: On connection failures.
        """
        if self._token is None:
            await self.authenticate()

        response = await self._send(method, path, params, json)
        if response.status_code == 401:
            logger.info("PocketBase token rejected, re-authenticating")
            await self.authenticate()
            response = await self._send(method, path, params, json)

        if response.status_code == 204 or not response.content:
            if response.is_success:
                return None

        if not response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = {}
            message = data.get("message") or response.reason_phrase or "Unknown error"
            raise PocketBaseError(response.status_code, message, data.get("data"))

        return response.json()

    async def _send(self, method, path, params, json) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            return await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            raise DatabaseError(f"PocketBase request failed: {e}") from e

    # ------------------------------------------------------------
    # Records API
    # ------------------------------------------------------------
    @staticmethod
    def records_path(collection: str, record_id: Optional[str] = None) -> str:
        path = f"/api/collections/{collection}/records"
        return f"{path}/{record_id}" if record_id else path

    async def list_records(
        self,
        collection: str,
        filter: Optional[str] = None,
        sort: Optional[str] = "-created",
        page: int = 1,
        per_page: int = 30,
        fields: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """List one page of records.

        Returns:
            Dict with items, page, perPage, totalItems, totalPages.
        """
        params: Dict[str, Any] = {"page": page, "perPage": min(per_page, MAX_PER_PAGE)}
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort
        if fields:
            params["fields"] = ",".join(fields)
        return await self.request("GET", self.records_path(collection), params=params)

    async def list_all(
        self,
        collection: str,
        filter: Optional[str] = None,
        sort: Optional[str] = "-created",
        page_size: int = 200,
    ) -> List[Dict[str, Any]]:
        """Walk every page of a listing and return all items."""
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            data = await self.list_records(
                collection, filter=filter, sort=sort, page=page, per_page=page_size
            )
            items.extend(data.get("items", []))
            if page >= data.get("totalPages", 1) or not data.get("items"):
                break
            page += 1
        return items

    async def count(self, collection: str, filter: Optional[str] = None) -> int:
        data = await self.list_records(
            collection, filter=filter, sort=None, page=1, per_page=1, fields=["id"]
        )
        return int(data.get("totalItems", 0))

    async def get_record(self, collection: str, record_id: str) -> Dict[str, Any]:
        return await self.request("GET", self.records_path(collection, record_id))

    async def create_record(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", self.records_path(collection), json=data)

    async def update_record(
        self, collection: str, record_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        return await self.request(
            "PATCH", self.records_path(collection, record_id), json=data
        )

    async def delete_record(self, collection: str, record_id: str) -> None:
        await self.request("DELETE", self.records_path(collection, record_id))
