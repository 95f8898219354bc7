"""On-disk cache of OAuth2 bearer tokens, keyed by client ID."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import json
import logging
import os
from pathlib import Path
import re

logger = logging.getLogger(__name__)

CONFIG_DIRNAME = ".resim"
CREDENTIAL_CACHE_FILENAME = "cache.json"

# Tokens this close to expiry are treated as already expired.
EXPIRY_DELTA = timedelta(seconds=10)

_FRACTION = re.compile(r"\.\d+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_expiry(expiry: datetime | None) -> str | None:
    if expiry is None:
        return None
    return expiry.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_expiry(raw: object) -> datetime | None:
    if raw is None or raw == "":
        return None
    if not isinstance(raw, str):
        raise ValueError(f"expiry must be a string, got {type(raw).__name__}")
    # Go writes up to nine fractional digits; fromisoformat wants exactly six.
    text = _FRACTION.sub(lambda m: (m.group(0) + "000000")[:7], raw.replace("Z", "+00:00"))
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TokenRecord:
    """A bearer token as returned by the token endpoint.

    ``expiry`` is an absolute UTC instant; ``None`` means the server issued a
    token without a lifetime, which never expires.
    """

    access_token: str
    token_type: str = "Bearer"
    expiry: datetime | None = None
    refresh_token: str | None = None

    def is_usable(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return False
        if self.expiry is None:
            return True
        now = now or _utcnow()
        return self.expiry - EXPIRY_DELTA > now

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token,
            "expiry": _format_expiry(self.expiry),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> TokenRecord:
        if not isinstance(payload, dict):
            raise ValueError("token record must be a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str):
            raise ValueError("token record is missing access_token")
        return cls(
            access_token=access_token,
            token_type=payload.get("token_type") or "Bearer",
            expiry=_parse_expiry(payload.get("expiry")),
            refresh_token=payload.get("refresh_token") or None,
        )

    @classmethod
    def from_token_response(cls, payload: dict, now: datetime | None = None) -> TokenRecord:
        """Build a record from an OAuth2 token endpoint response body."""
        expires_in = payload.get("expires_in")
        expiry = None
        if expires_in:
            expiry = (now or _utcnow()) + timedelta(seconds=float(expires_in))
        return cls(
            access_token=payload["access_token"],
            token_type=payload.get("token_type") or "Bearer",
            expiry=expiry,
            refresh_token=payload.get("refresh_token") or None,
        )


def default_cache_path() -> Path:
    return Path.home() / CONFIG_DIRNAME / CREDENTIAL_CACHE_FILENAME


class CredentialCache:
    """Persists the last token seen for each client ID between invocations.

    Loading and saving are best-effort: failures are logged and the command
    carries on, at worst re-authenticating next time.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or default_cache_path()
        self.tokens: dict[str, TokenRecord] = {}
        # Entries that failed to parse, written back untouched on save.
        self._unreadable: dict[str, object] = {}

    def load(self) -> None:
        self.tokens = {}
        self._unreadable = {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("No credential cache at %s, initializing credential cache", self.path)
            return
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Unable to read credential cache %s: %s", self.path, exc)
            return

        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict) or not isinstance(parsed.get("tokens"), dict):
                raise ValueError('expected an object with a "tokens" mapping')
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("Ignoring corrupt credential cache %s: %s", self.path, exc)
            return

        for client_id, record in parsed["tokens"].items():
            try:
                self.tokens[str(client_id)] = TokenRecord.from_dict(record)
            except ValueError as exc:
                logger.warning("Skipping unreadable credential cache entry for %s: %s", client_id, exc)
                self._unreadable[str(client_id)] = record

    def token_for(self, client_id: str) -> TokenRecord | None:
        return self.tokens.get(client_id)

    def save(self, client_id: str, token: TokenRecord) -> None:
        self.tokens[client_id] = token
        self._unreadable.pop(client_id, None)
        entries = dict(self._unreadable)
        entries.update((cid, record.to_dict()) for cid, record in self.tokens.items())
        payload = {"tokens": entries}
        try:
            self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            self.path.touch(mode=0o600, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
            if os.name != "nt":
                self.path.chmod(0o600)
        except OSError as exc:
            logger.warning("Error saving credential cache %s: %s", self.path, exc)
