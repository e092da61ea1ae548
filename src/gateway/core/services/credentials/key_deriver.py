"""Deterministic per-user key identifiers.

A key id is recomputable from the identity, the calendar year and the salt, so
no identity-to-credential table is stored anywhere. Changing the year rotates
every user onto a fresh credential.
"""

import hashlib
from datetime import datetime, timezone
from typing import Literal

NormalizationPolicy = Literal["exact", "lowercase"]


def normalize_identity(identity: str, policy: NormalizationPolicy = "exact") -> str:
    """Apply the configured normalization policy to a resolved identity.

    ``exact`` leaves the string untouched. ``lowercase`` strips surrounding
    whitespace and lowercases, so ``" Jack@Org.com"`` and ``"jack@org.com"`` share
    a key.
    """
    if policy == "exact":
        return identity
    if policy == "lowercase":
        return identity.strip().lower()
    raise ValueError(f"Unknown identity normalization policy: {policy}")


def current_year() -> int:
    return datetime.now(timezone.utc).year


def derive_key_id(
    identity: str,
    salt: str,
    *,
    year: int | None = None,
    prefix: str = "sk-",
) -> str:
    """Compute ``prefix + md5(identity + year + salt)`` as a hex digest.

    Pure for fixed inputs. Callers must reject an empty identity beforehand,
    it still hashes to a stable but meaningless key.
    """
    if year is None:
        year = current_year()
    digest = hashlib.md5(f"{identity}{year}{salt}".encode("utf-8")).hexdigest()
    return f"{prefix}{digest}"


class KeyDeriver:
    """Key derivation bound to the configured salt, prefix and normalization."""

    def __init__(
        self,
        salt: str,
        prefix: str = "sk-",
        normalization: NormalizationPolicy = "exact",
    ) -> None:
        self.salt = salt
        self.prefix = prefix
        self.normalization = normalization

    def normalize(self, identity: str) -> str:
        return normalize_identity(identity, self.normalization)

    def derive(self, identity: str, year: int | None = None) -> str:
        return derive_key_id(
            self.normalize(identity), self.salt, year=year, prefix=self.prefix
        )
