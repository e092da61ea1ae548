"""Per-user LLM credential as held by the credential-management service."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Credential(BaseModel):
    """Budget-bounded API key issued for one (identity, year) pair.

    The gateway only reads these records or triggers their creation; spend is
    accrued by the upstream service.
    """

    model_config = ConfigDict(extra="ignore")

    key: str = Field(description="Secret key value forwarded to the LLM proxy")
    key_alias: str | None = Field(default=None, description="Human readable alias")
    spend: float = Field(default=0.0, description="Spend accrued in the current period")
    max_budget: float | None = Field(default=None, description="Spend cap per period")
    budget_duration: str | None = Field(default=None, description="Budget renewal period")
    budget_reset_at: str | None = Field(default=None, description="Next budget reset time")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_key_info(cls, payload: dict[str, Any], key: str) -> "Credential":
        """Build a credential from a key-info or key-generate response.

        Key-info responses nest the record under ``info`` while key-generate
        responses are flat, so both shapes are accepted. ``key`` is used when the
        response does not echo the secret back.

        Raises:
            ValueError: If the payload is not a JSON object or fails validation
        """
        if not isinstance(payload, dict):
            raise ValueError("Key record is not a JSON object")
        record = dict(payload)
        info = record.pop("info", None)
        if isinstance(info, dict):
            record.update(info)
        record["key"] = payload.get("key") or key
        if record.get("spend") is None:
            record["spend"] = 0.0
        if record.get("metadata") is None:
            record["metadata"] = {}
        return cls.model_validate(record)

    def informational_headers(self) -> dict[str, str]:
        """Spend and budget values attached to forwarded requests."""
        return {
            "spend": str(self.spend),
            "budget": "" if self.max_budget is None else str(self.max_budget),
        }
