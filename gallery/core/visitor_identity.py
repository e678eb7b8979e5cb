"""Signed visitor id cookies used to deduplicate view counts.

The cookie value is ``<id>:<signature>`` where ``id`` is 128 random bits in
hex and ``signature`` is ``HMAC-SHA256(secret, id)``. Without a configured
secret the signature degrades to a plain SHA-256 of the id, which only
detects accidental corruption and is meant for non-production setups.

A visitor id distinguishes repeat visits; it does not authenticate anyone.
The server keeps no record of issued ids.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass

from fastapi import Request, Response

from gallery.core.logging import fingerprint

logger = logging.getLogger(__name__)

COOKIE_NAME = "visitor_id"
COOKIE_MAX_AGE_SECONDS = 60 * 60 * 24 * 365
ID_BYTES = 16


@dataclass(frozen=True)
class VisitorToken:
    """A resolved visitor identity.

    Attributes:
        visitor_id: Raw id, safe to pass to the view counter.
        cookie_value: Signed value to send back; None when the incoming
            cookie was already valid.
    """

    visitor_id: str
    cookie_value: str | None = None

    @property
    def is_new(self) -> bool:
        return self.cookie_value is not None


class VisitorIdentity:
    """Issues and validates signed visitor id cookies."""

    def __init__(
        self,
        secret: str = "",
        *,
        cookie_name: str = COOKIE_NAME,
        max_age_seconds: int = COOKIE_MAX_AGE_SECONDS,
    ) -> None:
        self._secret = secret
        self.cookie_name = cookie_name
        self.max_age_seconds = max_age_seconds
        if not secret:
            logger.warning(
                "visitor_identity.degraded_mode",
                extra={"hint": "Set SECURITY_PUBLIC_ID_SECRET to sign visitor cookies"},
            )

    def sign(self, visitor_id: str, secret: str | None = None) -> str:
        key = self._secret if secret is None else secret
        if key:
            return hmac.new(key.encode("utf-8"), visitor_id.encode("utf-8"), hashlib.sha256).hexdigest()
        return hashlib.sha256(visitor_id.encode("utf-8")).hexdigest()

    def verify(self, cookie_value: str | None, secret: str | None = None) -> str | None:
        """Return the id carried by a well-signed cookie, else None."""

        if not cookie_value or ":" not in cookie_value:
            return None
        visitor_id, signature = cookie_value.split(":", 1)
        if not visitor_id or not signature:
            return None
        expected = self.sign(visitor_id, secret)
        if hmac.compare_digest(expected, signature):
            return visitor_id
        return None

    def mint(self, secret: str | None = None) -> VisitorToken:
        visitor_id = secrets.token_hex(ID_BYTES)
        return VisitorToken(
            visitor_id=visitor_id,
            cookie_value=f"{visitor_id}:{self.sign(visitor_id, secret)}",
        )

    def resolve(self, cookie_value: str | None, secret: str | None = None) -> VisitorToken:
        """Accept a valid cookie or mint a fresh identity."""

        visitor_id = self.verify(cookie_value, secret)
        if visitor_id is not None:
            return VisitorToken(visitor_id=visitor_id)

        token = self.mint(secret)
        logger.debug(
            "visitor_identity.minted",
            extra={
                "visitor": fingerprint(token.visitor_id),
                "reason": "invalid_cookie" if cookie_value else "no_cookie",
            },
        )
        return token

    def get_or_create(self, request: Request, response: Response, secret: str | None = None) -> str:
        """Resolve the request's visitor id, setting a cookie when minting.

        Args:
            request: Incoming request carrying the cookie.
            response: Response that receives ``Set-Cookie`` for a new id.
            secret: Optional secret overriding the configured one.

        Returns:
            The raw visitor id.
        """

        token = self.resolve(request.cookies.get(self.cookie_name), secret)
        if token.cookie_value is not None:
            response.set_cookie(
                self.cookie_name,
                token.cookie_value,
                max_age=self.max_age_seconds,
                expires=self.max_age_seconds,
                path="/",
                secure=request.url.scheme == "https",
                httponly=True,
                samesite="lax",
            )
        return token.visitor_id
