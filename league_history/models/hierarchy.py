"""Pydantic models for the season/division hierarchy returned by discovery."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Season(BaseModel):
    """A competition period in the source hierarchy."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, description="Opaque season identifier")
    name: str = Field(default="", description="Display name (e.g. 2016-17)")
    is_live: bool = Field(
        default=False, alias="isLive", description="Whether this is the current season"
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Source ids may arrive as numbers; they are opaque strings here."""
        if isinstance(v, int):
            return str(v)
        return v


class Division(BaseModel):
    """A group of teams within one season; the unit of a single scrape."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, description="Opaque division identifier")
    name: str = Field(default="", description="Division display name")
    season_id: str = Field(..., min_length=1, description="Owning season")

    @field_validator("id", "season_id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def label(self) -> str:
        """
        Division label used in the scraped team natural key.

        Built from the id only, so a renamed division keeps its rows.
        """
        return f"Division {self.id}"


def unwrap_list(payload: Any, envelope_key: str) -> list[Any]:
    """
    Accept either a bare JSON list or an envelope object holding the list.

    Args:
        payload: Decoded JSON response body
        envelope_key: Key holding the list when the payload is enveloped

    Returns:
        The list of items

    Raises:
        ValueError: If the payload is neither shape
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get(envelope_key), list):
        items: list[Any] = payload[envelope_key]
        return items
    raise ValueError(
        f"Expected a list or an object with a '{envelope_key}' list, "
        f"got {type(payload).__name__}"
    )
