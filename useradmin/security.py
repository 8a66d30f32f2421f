"""Bearer token guard for the grid's JSON endpoints."""
from __future__ import annotations

import logging
import secrets
from typing import Iterable, Tuple

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger("useradmin.security")


class TokenAuth:
    """Bearer token authentication using constant-time comparisons.

    With no tokens configured the guard lets every request through; sign-in
    for the pages themselves is left to whatever sits in front of the service.
    """

    def __init__(self, tokens: Iterable[str]):
        self._tokens: Tuple[str, ...] = tuple(token.strip() for token in tokens if token.strip())
        self._bearer = HTTPBearer(auto_error=False)

    @property
    def enabled(self) -> bool:
        return bool(self._tokens)

    async def __call__(self, request: Request) -> None:
        if not self._tokens:
            return None

        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        provided = credentials.credentials
        matched = False
        for token in self._tokens:
            matched |= secrets.compare_digest(provided, token)
        if matched:
            return None

        logger.warning("Rejected request to %s with an invalid API token", request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API token")


__all__ = ["TokenAuth"]
