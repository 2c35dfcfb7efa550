# app/services/security.py
import hmac
import logging
import re
from typing import Iterable

from fastapi import Request

from app.errors import AuthorizationError

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^\s*bearer\s+(.*)$", re.IGNORECASE | re.DOTALL)
_SPLIT_RE = re.compile(r"[,\s]+")


class TokenStore:
    """Read-only set of bearer tokens allowed to call the relay."""

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens = frozenset(t for t in tokens if t)
        # compared as bytes so length gating matches what compare_digest sees
        self._encoded = tuple(t.encode("utf-8") for t in sorted(self._tokens))

    @classmethod
    def from_string(cls, raw: str | None) -> "TokenStore":
        return cls(p for p in _SPLIT_RE.split(raw or "") if p)

    def __len__(self) -> int:
        return len(self._tokens)

    def __bool__(self) -> bool:
        return bool(self._tokens)

    def contains(self, candidate: str) -> bool:
        """
        Constant-time membership test.

        Only allowed tokens with the same byte length as the candidate are
        compared, each with hmac.compare_digest, and the whole set is always
        scanned.
        """
        received = candidate.encode("utf-8")
        found = False
        for allowed in self._encoded:
            if len(allowed) != len(received):
                continue
            if hmac.compare_digest(allowed, received):
                found = True
        return found


def mask_token(k: str | None) -> str:
    k = (k or "").strip()
    if not k:
        return "None"
    n = len(k)
    return f"{k[:6]}...{k[-4:]}(len={n})" if n > 10 else f"***(len={n})"


def parse_bearer(header_value: str | None) -> str:
    if header_value is None or not header_value.strip():
        raise AuthorizationError("missing_header")

    m = _BEARER_RE.match(header_value)
    token = m.group(1).strip() if m else ""
    if not token:
        raise AuthorizationError("invalid_format")
    return token


def authorize(header_value: str | None, tokens: TokenStore) -> str:
    """Return the accepted token or raise AuthorizationError(reason)."""
    try:
        token = parse_bearer(header_value)
    except AuthorizationError as e:
        logger.info(f"[AUTH] rejected reason={e.reason} configured_tokens={len(tokens)}")
        raise

    logger.info(f"[AUTH] received={mask_token(token)} configured_tokens={len(tokens)}")

    if not tokens:
        logger.warning("[AUTH] no tokens configured, rejecting every request")
        raise AuthorizationError("no_tokens_configured")

    if not tokens.contains(token):
        raise AuthorizationError("token_not_allowed")
    return token


def enforce_bearer_token(request: Request) -> str:
    return authorize(request.headers.get("authorization"), request.app.state.tokens)
