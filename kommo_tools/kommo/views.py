import logging

from fastapi import APIRouter

from kommo_tools.common.api.errors import HTTP400, HTTP404, HTTP502
from kommo_tools.exceptions import InvalidFieldsError, KommoAPIError
from kommo_tools.kommo import api
from kommo_tools.kommo.metadata import (
    fetch_entity_fields,
    fetch_field_catalog,
    get_select_field_options,
    search_entity_field,
)
from kommo_tools.kommo.models import (
    BatchUpdateOutcome,
    CustomFieldChange,
    CustomFieldCreate,
    EntityKind,
    FieldDefinition,
    UpdateFieldsRequest,
)
from kommo_tools.kommo.process import update_fields_by_name_or_id

logger = logging.getLogger('kommo.fields')

router = APIRouter(prefix='/tools', tags=['tools'])


def _raise_for_kommo_error(e: KommoAPIError):
    if e.status_code == 404:
        raise HTTP404(e.message) from e
    raise HTTP502(str(e)) from e


@router.post('/{entity_kind}/{entity_id:int}/custom-fields/update/', name='update-custom-fields')
async def update_custom_fields(
    entity_kind: EntityKind, entity_id: int, data: UpdateFieldsRequest
) -> BatchUpdateOutcome:
    """
    Update an entity's custom fields by field name, code or id. Values for select fields are matched to the
    closest option. Partial failures are reported in `errors` while the other fields are still saved.
    """
    try:
        return await update_fields_by_name_or_id(entity_kind, entity_id, data.fields)
    except InvalidFieldsError as e:
        raise HTTP400(str(e)) from e


@router.get('/{entity_kind}/{entity_id:int}/custom-fields/', name='entity-custom-fields')
async def entity_custom_fields(entity_kind: EntityKind, entity_id: int):
    """The custom fields that currently have a value on the entity"""
    try:
        snapshot = await fetch_entity_fields(entity_kind, entity_id)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)
    return {
        'custom_fields': [f.model_dump() for f in snapshot.fields],
        'pipeline_id': snapshot.pipeline_id,
        'note': snapshot.note,
    }


@router.get('/{entity_kind}/{entity_id:int}/custom-fields/search/', name='search-entity-custom-field')
async def search_entity_custom_field(entity_kind: EntityKind, entity_id: int, term: str):
    try:
        field = await search_entity_field(entity_kind, entity_id, term)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)
    if not field:
        raise HTTP404(f'Custom field not found: {term}. Only fields with values can be searched.')
    return field.model_dump()


@router.get('/{entity_kind}/custom-fields/', name='custom-field-catalog')
async def custom_field_catalog(entity_kind: EntityKind) -> list[FieldDefinition]:
    try:
        return await fetch_field_catalog(entity_kind)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)


@router.get('/{entity_kind}/custom-fields/{field_id:int}/options/', name='select-field-options')
async def select_field_options(entity_kind: EntityKind, field_id: int):
    try:
        return await get_select_field_options(entity_kind, field_id)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)


@router.post('/{entity_kind}/custom-fields/', name='create-custom-field')
async def create_custom_field(entity_kind: EntityKind, data: CustomFieldCreate):
    try:
        field = await api.create_custom_field(entity_kind, data.model_dump(mode='json', exclude_none=True))
    except KommoAPIError as e:
        _raise_for_kommo_error(e)
    logger.info('Created %s custom field %s', entity_kind.value, field.get('id'))
    return {'success': True, 'field': field}


@router.patch('/{entity_kind}/custom-fields/{field_id:int}/', name='update-custom-field')
async def update_custom_field(entity_kind: EntityKind, field_id: int, data: CustomFieldChange):
    changed_fields = data.model_dump(mode='json', exclude_none=True)
    if not changed_fields:
        raise HTTP400('Nothing to update')
    try:
        field = await api.update_custom_field(entity_kind, field_id, changed_fields)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)
    logger.info('Updated %s custom field %s', entity_kind.value, field_id)
    return {'success': True, 'field': field}


@router.delete('/{entity_kind}/custom-fields/{field_id:int}/', name='delete-custom-field')
async def delete_custom_field(entity_kind: EntityKind, field_id: int):
    try:
        await api.delete_custom_field(entity_kind, field_id)
    except KommoAPIError as e:
        _raise_for_kommo_error(e)
    logger.info('Deleted %s custom field %s', entity_kind.value, field_id)
    return {'success': True}
