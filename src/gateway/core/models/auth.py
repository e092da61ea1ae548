"""Outcome of an authorization decision."""

from pydantic import BaseModel, Field


class AuthResult(BaseModel):
    """Pass/fail decision returned by the auth gate.

    Serialized as-is into the rejection body, so field names match what the chat
    front end reads (``error`` and ``msg``).
    """

    error: bool = Field(description="True when the request is rejected")
    msg: str | None = Field(default=None, description="Human readable rejection reason")

    @classmethod
    def accept(cls) -> "AuthResult":
        return cls(error=False)

    @classmethod
    def reject(cls, msg: str) -> "AuthResult":
        return cls(error=True, msg=msg)
