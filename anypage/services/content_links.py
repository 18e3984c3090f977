"""Signed, expiring links to stored document bytes.

Embedded viewers, download links and new browser tabs cannot attach the
``X-User-ID`` header, so the content URL handed to them carries a short-lived
JWT naming the blob and its owner instead.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import PurePosixPath

import jwt

from ..utils.errors import ContentLinkError

CONTENT_LINK_ALGORITHM = "HS256"
CONTENT_LINK_AUDIENCE = "anypage-content"


class ContentLinkSigner:
    """Issue and check tokens that grant read access to one storage reference."""

    def __init__(self, secret_key: str, *, ttl_seconds: int = 3600) -> None:
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def issue(self, storage_reference: str, *, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(UTC)
        payload = {
            "sub": PurePosixPath(storage_reference).parts[0],
            "ref": storage_reference,
            "aud": CONTENT_LINK_AUDIENCE,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=CONTENT_LINK_ALGORITHM)

    def verify(self, token: str, storage_reference: str) -> str:
        """Return the owner named by ``token`` if it grants ``storage_reference``."""

        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[CONTENT_LINK_ALGORITHM],
                audience=CONTENT_LINK_AUDIENCE,
            )
        except jwt.InvalidTokenError as exc:
            raise ContentLinkError("Invalid or expired content link") from exc

        if claims.get("ref") != storage_reference:
            raise ContentLinkError("Invalid or expired content link")
        return str(claims["sub"])


__all__ = ["CONTENT_LINK_ALGORITHM", "ContentLinkSigner"]
