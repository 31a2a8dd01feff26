import re
from typing import Optional

from kommo_tools.kommo.models import FieldKey, FieldValueSnapshot, ResolutionSource, ResolvedField

_FIELD_ID_RE = re.compile(r'^\s*\d+\s*$')


def parse_field_id(key: FieldKey) -> Optional[int]:
    """Returns the key as a field id if it is a positive integer, or a string holding one."""
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key > 0 else None
    if isinstance(key, str) and _FIELD_ID_RE.match(key):
        field_id = int(key)
        return field_id if field_id > 0 else None
    return None


def _search_snapshot(needle: str, snapshot: FieldValueSnapshot) -> Optional[ResolvedField]:
    for field in snapshot.fields:
        if field.field_name and needle in field.field_name.lower():
            return ResolvedField(field_id=field.field_id, source=ResolutionSource.MATCHED_BY_NAME)
        if field.field_code and needle in field.field_code.lower():
            return ResolvedField(field_id=field.field_id, source=ResolutionSource.MATCHED_BY_CODE)


def resolve_field_key(key: FieldKey, snapshot: FieldValueSnapshot) -> Optional[ResolvedField]:
    """
    Turns a caller's field key into a Kommo field id. Numeric keys are always taken as ids, other keys are matched
    case-insensitively against the names and codes of the populated fields, first as a substring and then through
    the name/code map of the same snapshot.

    Returns None when nothing matches. That can't tell "no such field" apart from "field exists but has no value on
    this entity", since the snapshot never contains empty fields.
    """
    field_id = parse_field_id(key)
    if field_id:
        return ResolvedField(field_id=field_id, source=ResolutionSource.ID_LITERAL)

    needle = str(key).strip().lower()
    if not needle:
        return None

    if resolved := _search_snapshot(needle, snapshot):
        return resolved

    if match := snapshot.name_to_id_map().get(needle):
        field_id, source = match
        return ResolvedField(field_id=field_id, source=source)
    return None
