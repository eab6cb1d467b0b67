"""Security-related helpers.

Optional HTTP Basic auth for the management API, plus the origin checks for
the two inbound webhooks: an HMAC signature for GitHub and an IP allowlist
for Linear.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from syncbridge.errors import VerificationError

SIGNATURE_PREFIX = "sha256="


@dataclass(frozen=True)
class BasicAuthCredentials:
    username: str
    password: str


def _parse_basic_auth_header(header_value: str) -> BasicAuthCredentials | None:
    """Parse an Authorization header containing HTTP Basic auth."""
    if not header_value:
        return None

    scheme, _, param = header_value.partition(" ")
    if scheme.lower() != "basic" or not param:
        return None

    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if sep != ":":
        return None

    return BasicAuthCredentials(username=username, password=password)


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Protect routes via HTTP Basic auth.

    Everything is protected except ``allow_paths`` (health and the webhook
    receivers, which verify their callers themselves).
    """

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        allow_paths: set[str] | None = None,
        realm: str = "SyncBridge",
    ):
        super().__init__(app)
        self._username = username
        self._password = password
        self._allow_paths = allow_paths or {"/health"}
        self._realm = realm

    def _unauthorized(self) -> Response:
        return Response(
            content="Unauthorized",
            status_code=401,
            headers={"WWW-Authenticate": f'Basic realm="{self._realm}", charset="UTF-8"'},
        )

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self._allow_paths:
            return await call_next(request)

        creds = _parse_basic_auth_header(request.headers.get("Authorization", ""))
        if creds is None:
            return self._unauthorized()

        ok_user = secrets.compare_digest(creds.username, self._username)
        ok_pass = secrets.compare_digest(creds.password, self._password)
        if not (ok_user and ok_pass):
            return self._unauthorized()

        return await call_next(request)


def sign_github_payload(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_github_signature(raw_body: bytes, secret: str | None, header_value: str | None) -> None:
    """Check X-Hub-Signature-256 against the raw request body.

    Raises VerificationError; never returns a falsy value for a bad signature.
    """
    if not secret:
        raise VerificationError("No webhook secret configured for this repository.")
    if not header_value or not header_value.startswith(SIGNATURE_PREFIX):
        raise VerificationError("Missing or malformed signature.")
    expected = sign_github_payload(raw_body, secret)
    # Bytes, since compare_digest rejects non-ASCII str input
    if not hmac.compare_digest(expected.encode("utf-8"), header_value.encode("utf-8", "surrogateescape")):
        raise VerificationError("Failed to validate signature.")


def client_ip(request: Request, trust_forwarded_for: bool = False) -> str | None:
    """Address the request came from; the first X-Forwarded-For hop when behind a trusted proxy."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def verify_linear_origin(ip: str | None, allowlist: set[str]) -> None:
    if not ip or ip not in allowlist:
        raise VerificationError(f"Could not verify Linear webhook from {ip or 'unknown address'}.")
