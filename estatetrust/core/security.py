"""
User API keys.

Plain keys look like ``et_<prefix>_<secret>``. The prefix is stored in clear
so a key can be recognised in the admin tools; only an HMAC of the whole
key (peppered with ``API_KEY_PEPPER``) is persisted.
"""
import hashlib
import hmac
import secrets
from dataclasses import dataclass

from estatetrust.core.config import settings


KEY_SCHEME = "et"
PREFIX_BYTES = 4


@dataclass(frozen=True)
class ApiKeyParts:
    prefix: str
    plain: str
    hashed: str


def generate_api_key() -> ApiKeyParts:
    prefix = secrets.token_hex(PREFIX_BYTES)
    plain = f"{KEY_SCHEME}_{prefix}_{secrets.token_urlsafe(32)}"
    return ApiKeyParts(prefix=prefix, plain=plain, hashed=hash_api_key(plain))


def key_prefix(plain: str) -> str | None:
    """Prefix of a well-formed key, else ``None``."""
    scheme, _, rest = plain.partition("_")
    prefix, _, secret = rest.partition("_")
    if scheme != KEY_SCHEME or len(prefix) != PREFIX_BYTES * 2 or not secret:
        return None
    return prefix


def hash_api_key(plain: str) -> str:
    pepper = settings.api_key_pepper.get_secret_value().encode("utf-8")
    return hmac.new(pepper, plain.encode("utf-8"), hashlib.sha256).hexdigest()
