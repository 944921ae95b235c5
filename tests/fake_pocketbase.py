"""
In-memory PocketBase double served through httpx.MockTransport.

Covers the REST surface PocketBaseClient uses: superuser auth on both the
current and the legacy path, /api/health, and records CRUD with filter,
sort, paging and field selection. Filters support =, !=, ~ (case-insensitive
substring, or a LIKE pattern when the operand holds %), >=, <=, >, <
combined with &&, || and parentheses.
"""

import json
import math
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

COLLECTIONS = ("incidents", "solutions", "lessons_learned", "knowledge_base")

REQUIRED_FIELDS = {
    "incidents": ("title", "category", "severity"),
    "solutions": ("incident_id", "solution_title"),
    "lessons_learned": ("incident_id",),
    "knowledge_base": ("title",),
}

_TOKEN = re.compile(
    r'\s*(&&|\|\||\(|\)|!=|>=|<=|=|~|>|<|"(?:[^"\\]|\\.)*"|[A-Za-z_][A-Za-z0-9_.]*)'
)
_RECORD_PATH = re.compile(r"^/api/collections/([^/]+)/records(?:/([^/]+))?$")

Predicate = Callable[[Dict[str, Any]], bool]


class FilterSyntaxError(ValueError):
    pass


# ------------------------------------------------------------------
# Filter parsing
# ------------------------------------------------------------------
def _tokenize(expression: str) -> List[str]:
    tokens, pos = [], 0
    expression = expression.rstrip()
    while pos < len(expression):
        m = _TOKEN.match(expression, pos)
        if not m:
            raise FilterSyntaxError(f"Unexpected input at {pos}: {expression[pos:]!r}")
        tokens.append(m.group(1))
        pos = m.end()
    return tokens


def _like(value: str, pattern: str) -> bool:
    regex = ""
    for escaped, wildcard, char in re.findall(r"\\(.)|([%_])|(.)", pattern, re.S):
        if wildcard:
            regex += ".*" if wildcard == "%" else "."
        else:
            regex += re.escape(escaped or char)
    return re.fullmatch(regex, value, re.IGNORECASE | re.DOTALL) is not None


def _compare(op: str, actual: Any, literal: str) -> bool:
    value = "" if actual is None else str(actual)
    if op == "=":
        return value == literal
    if op == "!=":
        return value != literal
    if op == "~":
        if "%" in literal:
            return _like(value, literal)
        return literal.lower() in value.lower()
    if op == ">=":
        return value >= literal
    if op == "<=":
        return value <= literal
    if op == ">":
        return value > literal
    if op == "<":
        return value < literal
    raise FilterSyntaxError(f"Unknown operator {op}")


class _Parser:
    def __init__(self, tokens: List[str]):
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise FilterSyntaxError("Unexpected end of filter")
        self.pos += 1
        return token

    def parse(self) -> Predicate:
        predicate = self.or_expr()
        if self.peek() is not None:
            raise FilterSyntaxError(f"Unexpected token {self.peek()!r}")
        return predicate

    def or_expr(self) -> Predicate:
        parts = [self.and_expr()]
        while self.peek() == "||":
            self.take()
            parts.append(self.and_expr())
        return lambda r: any(p(r) for p in parts)

    def and_expr(self) -> Predicate:
        parts = [self.atom()]
        while self.peek() == "&&":
            self.take()
            parts.append(self.atom())
        return lambda r: all(p(r) for p in parts)

    def atom(self) -> Predicate:
        token = self.take()
        if token == "(":
            inner = self.or_expr()
            if self.take() != ")":
                raise FilterSyntaxError("Missing closing parenthesis")
            return inner
        field, op, literal = token, self.take(), self.take()
        if not (literal.startswith('"') and literal.endswith('"')):
            raise FilterSyntaxError(f"Expected string literal, got {literal!r}")
        value = re.sub(r"\\(.)", r"\1", literal[1:-1])
        return lambda r: _compare(op, r.get(field), value)


def compile_filter(expression: Optional[str]) -> Predicate:
    if not expression or not expression.strip():
        return lambda r: True
    return _Parser(_tokenize(expression)).parse()


# ------------------------------------------------------------------
# Server
# ------------------------------------------------------------------
def _error(status: int, message: str, data: Optional[dict] = None) -> httpx.Response:
    return httpx.Response(status, json={"code": status, "message": message, "data": data or {}})


def _record_id() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(15))


class FakePocketBase:
    """State plus an httpx handler; pass ``transport`` to PocketBaseClient."""

    def __init__(self, admin_email: str = "admin@example.com",
                 admin_password: str = "admin123456", legacy_admins: bool = False):
        self.admins = {admin_email: admin_password}
        self.admin_ids = {admin_email: "admin0000000001"}
        self.legacy_admins = legacy_admins
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self.tokens: set = set()
        self.healthy = True
        self.offline = False
        self.requests: List[httpx.Request] = []
        self.auth_attempts = 0
        self._seq = 0
        self._failures: List[httpx.Response] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- test helpers --------------------------------------------------

    def _timestamp(self) -> str:
        self._seq += 1
        moment = datetime.now(timezone.utc) + timedelta(milliseconds=self._seq)
        return moment.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] + "Z"

    def seed(self, collection: str, created: Optional[str] = None, **fields) -> Dict[str, Any]:
        """Insert a record directly, bypassing auth and validation."""
        stamp = created or self._timestamp()
        record = {
            "id": fields.pop("id", None) or _record_id(),
            "collectionName": collection,
            "created": stamp,
            "updated": stamp,
            **fields,
        }
        self.collections.setdefault(collection, {})[record["id"]] = record
        return dict(record)

    def records(self, collection: str) -> List[Dict[str, Any]]:
        return list(self.collections[collection].values())

    def expire_tokens(self) -> None:
        self.tokens.clear()

    def fail_next(self, status: int, message: str = "Something went wrong.") -> None:
        """Answer the next records request with an error."""
        self._failures.append(_error(status, message))

    def count_requests(self, method: str, path_prefix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        )

    # -- dispatch ------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("Connection refused", request=request)
        self.requests.append(request)
        path = request.url.path

        if path == "/api/health":
            if self.healthy:
                return httpx.Response(200, json={"code": 200, "message": "API is healthy.", "data": {}})
            return _error(503, "Service unavailable.")

        if path == "/api/collections/_superusers/auth-with-password":
            if self.legacy_admins:
                return _error(404, "Missing collection context.")
            return self._auth(request, "record")

        if path == "/api/admins/auth-with-password":
            if not self.legacy_admins:
                return _error(404, "The requested resource wasn't found.")
            return self._auth(request, "admin")

        m = _RECORD_PATH.match(path)
        if m:
            return self._records(request, m.group(1), m.group(2))

        return _error(404, "The requested resource wasn't found.")

    def _auth(self, request: httpx.Request, key: str) -> httpx.Response:
        self.auth_attempts += 1
        body = json.loads(request.content or b"{}")
        email, password = body.get("identity"), body.get("password")
        if email not in self.admins or self.admins[email] != password:
            return _error(400, "Failed to authenticate.")
        token = f"tok_{secrets.token_hex(8)}"
        self.tokens.add(token)
        return httpx.Response(200, json={
            "token": token,
            key: {"id": self.admin_ids.get(email, "admin0000000001"), "email": email},
        })

    def _records(self, request: httpx.Request, collection: str,
                 record_id: Optional[str]) -> httpx.Response:
        auth = request.headers.get("Authorization", "")
        if not auth.startswith("Bearer ") or auth[len("Bearer "):] not in self.tokens:
            return _error(401, "The request requires valid record authorization token.")
        if self._failures:
            return self._failures.pop(0)
        if collection not in self.collections:
            return _error(404, "Missing collection context.")

        store = self.collections[collection]
        method = request.method

        if record_id is None and method == "GET":
            return self._list(request, store)
        if record_id is None and method == "POST":
            data = json.loads(request.content or b"{}")
            missing = [f for f in REQUIRED_FIELDS.get(collection, ()) if data.get(f) in (None, "")]
            if missing:
                return _error(400, "Failed to create record.", {
                    f: {"code": "validation_required", "message": "Missing required value."}
                    for f in missing
                })
            record = self.seed(collection, **data)
            return httpx.Response(200, json=record)

        if record_id is None or record_id not in store:
            return _error(404, "The requested resource wasn't found.")

        if method == "GET":
            return httpx.Response(200, json=store[record_id])
        if method == "PATCH":
            data = json.loads(request.content or b"{}")
            store[record_id].update(data)
            store[record_id]["updated"] = self._timestamp()
            return httpx.Response(200, json=store[record_id])
        if method == "DELETE":
            del store[record_id]
            return httpx.Response(204)
        return _error(405, "Method not allowed.")

    def _list(self, request: httpx.Request, store: Dict[str, Dict[str, Any]]) -> httpx.Response:
        params = request.url.params
        try:
            predicate = compile_filter(params.get("filter"))
        except FilterSyntaxError as e:
            return _error(400, f"Invalid filter: {e}")

        items = [r for r in store.values() if predicate(r)]
        for key in reversed([k for k in (params.get("sort") or "").split(",") if k]):
            field = key.lstrip("-+")
            items.sort(key=lambda r: "" if r.get(field) is None else str(r.get(field)),
                       reverse=key.startswith("-"))

        page = max(int(params.get("page", 1)), 1)
        per_page = max(int(params.get("perPage", 30)), 1)
        total = len(items)
        window = items[(page - 1) * per_page:page * per_page]

        fields = [f for f in (params.get("fields") or "").split(",") if f]
        if fields:
            window = [{k: r[k] for k in fields if k in r} for r in window]

        return httpx.Response(200, json={
            "page": page,
            "perPage": per_page,
            "totalItems": total,
            "totalPages": math.ceil(total / per_page) if total else 0,
            "items": window,
        })
