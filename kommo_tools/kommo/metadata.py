"""
Reads the two sources used to resolve custom fields: the fields currently populated on one entity (the snapshot)
and the custom field catalog for the entity kind. Nothing here is cached, every call goes to Kommo.
"""

import logging
from typing import Optional

from kommo_tools.core.config import settings
from kommo_tools.kommo import api
from kommo_tools.kommo.models import EntityKind, FieldDefinition, FieldValueSnapshot, SnapshotField
from kommo_tools.kommo.resolver import resolve_field_key

logger = logging.getLogger('kommo.fields')


async def fetch_entity_fields(kind: EntityKind, entity_id: int) -> FieldValueSnapshot:
    entity = await api.get_entity(kind, entity_id)
    return FieldValueSnapshot(
        entity_kind=kind,
        entity_id=entity_id,
        fields=entity.get('custom_fields_values') or [],
        pipeline_id=entity.get('pipeline_id'),
    )


async def fetch_field_catalog(kind: EntityKind) -> list[FieldDefinition]:
    """
    Every custom field definition for the entity kind, walking the pages until Kommo stops giving a next link.
    """
    catalog = []
    page = 1
    while True:
        response = await api.list_custom_fields(kind, page=page, limit=settings.kommo_catalog_page_limit)
        if not response:
            break
        catalog.extend(
            FieldDefinition(**f) for f in (response.get('_embedded') or {}).get('custom_fields') or []
        )
        if not (response.get('_links') or {}).get('next'):
            break
        page += 1
    logger.info('Fetched %s %s custom field definitions over %s page(s)', len(catalog), kind.value, page)
    return catalog


def find_definition(catalog: list[FieldDefinition], field_id: int) -> Optional[FieldDefinition]:
    return next((d for d in catalog if d.id == field_id), None)


async def get_select_field_options(kind: EntityKind, field_id: int) -> dict:
    """
    The valid options of a select/multiselect field, taken from the catalog rather than from values other entities
    happen to hold.
    """
    definition = find_definition(await fetch_field_catalog(kind), field_id)
    if not definition:
        return {
            'success': False,
            'field_id': field_id,
            'error': f'Field with ID {field_id} not found in custom fields metadata',
        }
    result = {
        'field_id': field_id,
        'field_name': definition.name,
        'field_code': definition.code,
        'field_type': definition.type,
    }
    if not definition.is_enumerated:
        return {
            'success': False,
            'error': f'Field "{definition.name}" is not a select field (type: {definition.type})',
            **result,
        }
    options = [o.model_dump() for o in definition.sorted_options()]
    return {'success': True, 'options': options, **result}


async def search_entity_field(kind: EntityKind, entity_id: int, term: str) -> Optional[SnapshotField]:
    """
    Finds a populated field on an entity by its id or by part of its name or code. Fields without a value can't be
    found this way.
    """
    snapshot = await fetch_entity_fields(kind, entity_id)
    resolved = resolve_field_key(term, snapshot)
    return resolved and snapshot.get_field(resolved.field_id)
