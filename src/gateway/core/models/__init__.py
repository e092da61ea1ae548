"""Credential and authorization result models."""

from .auth import AuthResult
from .credential import Credential

__all__ = ["AuthResult", "Credential"]
