import logging
from dataclasses import dataclass, field
from typing import Mapping

import logfire

from kommo_tools.exceptions import InvalidFieldsError, KommoAPIError
from kommo_tools.kommo import api
from kommo_tools.kommo.matching import MatchedOption, NoMatch, match_option
from kommo_tools.kommo.metadata import fetch_entity_fields, fetch_field_catalog
from kommo_tools.kommo.models import (
    BatchUpdateOutcome,
    EntityKind,
    FieldDefinition,
    FieldError,
    FieldKey,
    FieldUpdate,
    FieldUpdateValue,
    FieldValueSnapshot,
)
from kommo_tools.kommo.resolver import resolve_field_key

logger = logging.getLogger('kommo.fields')


def _value_to_str(value) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


@dataclass
class FieldUpdatePlan:
    """The result of resolving a batch: what to write and which keys couldn't be used."""

    payload: list[FieldUpdate] = field(default_factory=list)
    errors: list[FieldError] = field(default_factory=list)

    def kommo_payload(self) -> list[dict]:
        return [f.to_kommo() for f in self.payload]


class FieldUpdateBuilder:
    """
    Resolves each {key: value} entry against a snapshot of the entity and the custom field catalog, building one
    payload entry per usable field and one error per key that couldn't be used. Doesn't touch the network.
    """

    def __init__(self, snapshot: FieldValueSnapshot, catalog: list[FieldDefinition]):
        self.snapshot = snapshot
        self.catalog = catalog

    def _field_id_for(self, key: FieldKey):
        # Numeric keys resolve as ids even when the field is missing from the snapshot
        resolved = resolve_field_key(key, self.snapshot)
        return resolved and resolved.field_id

    def _not_found_message(self, key: FieldKey) -> str:
        return (
            f'Field not found: {key}. The field may not exist or may not have a value yet on this '
            f'{self.snapshot.entity_kind.singular.lower()} (Kommo only reports fields with values). '
            'Try using the field ID directly.'
        )

    def build(self, entries: Mapping[FieldKey, object]) -> FieldUpdatePlan:
        plan = FieldUpdatePlan()
        keys_by_field_id = {}
        for key, raw_value in entries.items():
            raw_value = _value_to_str(raw_value)
            field_id = self._field_id_for(key)
            if not field_id:
                logger.info(
                    'Could not resolve custom field %r on %s %s',
                    key,
                    self.snapshot.entity_kind.value,
                    self.snapshot.entity_id,
                )
                plan.errors.append(FieldError(field=str(key), message=self._not_found_message(key)))
                continue

            if field_id in keys_by_field_id:
                # Both entries are still sent, in the order given
                logger.warning('Custom field %s given twice, as %r and %r', field_id, keys_by_field_id[field_id], key)
            keys_by_field_id[field_id] = key

            result = match_option(field_id, raw_value, self.catalog)
            if isinstance(result, NoMatch):
                logger.info('No option of field %s matches %r', field_id, raw_value)
                plan.errors.append(FieldError(field=str(key), message=result.message(raw_value)))
            elif isinstance(result, MatchedOption):
                # Always send the option exactly as Kommo stores it along with its enum_id
                value = FieldUpdateValue(value=result.value, enum_id=result.enum_id)
                plan.payload.append(FieldUpdate(field_id=field_id, values=[value]))
            else:
                plan.payload.append(FieldUpdate(field_id=field_id, values=[FieldUpdateValue(value=raw_value)]))
        return plan


def validate_fields(fields: Mapping[FieldKey, object]):
    if not fields:
        raise InvalidFieldsError('At least one field must be given')
    for key, value in fields.items():
        if isinstance(key, str) and not key.strip():
            raise InvalidFieldsError('Field names must not be blank')
        if value is None:
            raise InvalidFieldsError(f'No value given for field {key}')


async def update_fields_by_name_or_id(
    kind: EntityKind, entity_id: int, fields: Mapping[FieldKey, object]
) -> BatchUpdateOutcome:
    """
    Updates an entity's custom fields using field names, codes or ids as keys and free text as values.

    The entity's populated fields and the catalog are each fetched once for the whole batch. Keys that can't be
    resolved, and select values that match no option, are reported per field while everything else is still
    written in a single PATCH. If that write fails nothing was saved, so no fields are reported as updated.
    """
    validate_fields(fields)

    with logfire.span('update_fields_by_name_or_id', entity_kind=kind.value, entity_id=entity_id):
        try:
            snapshot = await fetch_entity_fields(kind, entity_id)
            catalog = await fetch_field_catalog(kind)
        except KommoAPIError as e:
            logger.error(f'Error reading custom fields for {kind.value} {entity_id}: {e}')
            return BatchUpdateOutcome(success=False, error=f'Update {kind.value} custom fields error: {e.message}')

        plan = FieldUpdateBuilder(snapshot, catalog).build(fields)
        if not plan.payload:
            return BatchUpdateOutcome(success=False, errors=plan.errors, error='No fields could be mapped to field IDs')

        try:
            await api.apply_field_update(kind, entity_id, plan.kommo_payload())
        except KommoAPIError as e:
            logger.error(f'Error updating custom fields for {kind.value} {entity_id}: {e}')
            return BatchUpdateOutcome(
                success=False, errors=plan.errors, error=f'Update {kind.value} custom fields error: {e.message}'
            )

        logger.info(
            'Updated %s custom field(s) on %s %s, %s error(s)',
            len(plan.payload),
            kind.value,
            entity_id,
            len(plan.errors),
        )
        return BatchUpdateOutcome(success=True, updated_fields=len(plan.payload), errors=plan.errors)
