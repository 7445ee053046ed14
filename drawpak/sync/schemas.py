"""Pydantic models for the user-library blob endpoints."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class LibraryData(BaseModel):
    """Body of a user's library: ``{version, elements, diagrams, ...}``.

    Unknown top-level keys are kept so a round trip through this client never
    drops data written by a newer one.
    """

    model_config = ConfigDict(extra="allow")

    version: int = 1
    elements: list[dict[str, Any]] = Field(default_factory=list)
    diagrams: list[dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _legacy_schemas_key(cls, value: Any) -> Any:
        # Older blobs stored diagrams under "schemas".
        if isinstance(value, dict) and "schemas" in value:
            value = dict(value)
            legacy = value.pop("schemas")
            if not value.get("diagrams") and isinstance(legacy, list):
                value["diagrams"] = legacy
        return value

    @model_validator(mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        if isinstance(value, dict):
            value = dict(value)
            for key in ("elements", "diagrams"):
                if value.get(key) is None:
                    value.pop(key, None)
            if value.get("version") is None:
                value.pop("version", None)
        return value


class LibraryEnvelope(BaseModel):
    """Response of ``GET /user-library/{username}``."""

    model_config = ConfigDict(extra="ignore")

    data: LibraryData = Field(default_factory=LibraryData)
    updated_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "updatedAt")
    )

    @model_validator(mode="before")
    @classmethod
    def _null_data(cls, value: Any) -> Any:
        if isinstance(value, dict) and value.get("data") is None:
            value = {k: v for k, v in value.items() if k != "data"}
        return value


class LibraryPutRequest(BaseModel):
    """Body of ``PUT /user-library/{username}``."""

    username: str
    updated_at: str
    data: LibraryData


class LibraryPutResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    updated_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "updatedAt")
    )
