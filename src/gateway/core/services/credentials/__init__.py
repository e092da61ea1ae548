"""Per-user credential derivation and provisioning."""

from .key_deriver import KeyDeriver, derive_key_id, normalize_identity
from .provisioner import CredentialService

__all__ = ["CredentialService", "KeyDeriver", "derive_key_id", "normalize_identity"]
