"""Airtable browsing for the form builder: the owner's bases and tables."""

from fastapi import APIRouter, Depends, Query

from formbridge.core.deps import get_owner_client
from formbridge.schemas.airtable import AirtableBaseRead, AirtableTableRead, TableFieldRead
from formbridge.services.airtable_client import AirtableClient
from formbridge.services.field_mapper import supported_fields

router = APIRouter(prefix="/airtable", tags=["airtable"])


@router.get("/bases", response_model=list[AirtableBaseRead])
async def list_bases(
    refresh: bool = Query(False),
    client: AirtableClient = Depends(get_owner_client),
):
    """Bases the owner's token can read. `refresh` drops the cached metadata first."""
    if refresh:
        client.clear_cache()
    return await client.list_bases()


@router.get("/bases/{base_id}/tables", response_model=list[AirtableTableRead])
async def list_tables(
    base_id: str,
    refresh: bool = Query(False),
    client: AirtableClient = Depends(get_owner_client),
):
    """Tables of a base, listing only the fields a question can be bound to."""
    if refresh:
        client.clear_cache()
    tables = await client.list_tables(base_id)
    return [
        AirtableTableRead(
            id=table.id,
            name=table.name,
            description=table.description,
            primary_field_id=table.primary_field_id,
            fields=[TableFieldRead.model_validate(f) for f in supported_fields(table.fields)],
        )
        for table in tables
    ]
