"""Schemas for browsing the owner's Airtable bases and tables."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FieldOptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    value: str
    label: str
    color: str | None = None


class TableFieldRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    airtable_type: str
    type: str | None
    description: str = ""
    options: list[FieldOptionRead] = Field(default_factory=list)
    validation: dict[str, Any] | None = None


class AirtableTableRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    primary_field_id: str | None = None
    fields: list[TableFieldRead] = Field(default_factory=list)


class AirtableBaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    permission_level: str | None = None
