from enum import Enum
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PositiveInt, field_validator

# A caller supplied key identifying a custom field: a field id, or a field name/code
FieldKey = Union[int, str]

ENUMERATED_FIELD_TYPES = ('select', 'multiselect')


class EntityKind(str, Enum):
    LEADS = 'leads'
    CONTACTS = 'contacts'
    COMPANIES = 'companies'
    CUSTOMERS = 'customers'

    @property
    def singular(self) -> str:
        return {'companies': 'Company', 'customers': 'Customer'}.get(self.value, self.value[:-1].capitalize())


class CustomFieldType(str, Enum):
    TEXT = 'text'
    NUMERIC = 'numeric'
    CHECKBOX = 'checkbox'
    SELECT = 'select'
    MULTISELECT = 'multiselect'
    DATE = 'date'
    URL = 'url'
    TEXTAREA = 'textarea'
    RADIOBUTTON = 'radiobutton'
    STREETADDRESS = 'streetaddress'


class ResolutionSource(str, Enum):
    ID_LITERAL = 'id-literal'
    MATCHED_BY_NAME = 'matched-by-name'
    MATCHED_BY_CODE = 'matched-by-code'


class FieldValue(BaseModel):
    value: Any = None
    enum_id: Optional[int] = None
    enum_code: Optional[str] = None


class SnapshotField(BaseModel):
    """A custom field as Kommo reports it on an entity, i.e. one that currently holds a value."""

    field_id: int
    field_name: Optional[str] = None
    field_code: Optional[str] = None
    field_type: Optional[str] = None
    values: list[FieldValue] = Field(default_factory=list)

    @field_validator('values', mode='before')
    @classmethod
    def none_to_list(cls, v):
        return v or []


class FieldValueSnapshot(BaseModel):
    """
    The custom fields currently populated on one entity. Kommo never returns fields without a value, so this is
    incomplete by construction: a field missing here may still exist.
    """

    entity_kind: EntityKind
    entity_id: int
    fields: list[SnapshotField] = Field(default_factory=list)
    pipeline_id: Optional[int] = None

    @property
    def note(self) -> Optional[str]:
        if not self.fields:
            return (
                'No custom fields with values found. Custom fields may exist but have no values '
                '(the Kommo API only returns fields with values).'
            )

    def get_field(self, field_id: int) -> Optional[SnapshotField]:
        return next((f for f in self.fields if f.field_id == field_id), None)

    def name_to_id_map(self) -> dict[str, tuple[int, ResolutionSource]]:
        """
        Lower-cased field names and codes mapped to their field id. Codes are added after names so a code wins
        over a name that happens to be spelt the same.
        """
        lookup = {}
        for field in self.fields:
            if field.field_name:
                lookup[field.field_name.lower()] = (field.field_id, ResolutionSource.MATCHED_BY_NAME)
            if field.field_code:
                lookup[field.field_code.lower()] = (field.field_id, ResolutionSource.MATCHED_BY_CODE)
        return lookup


class EnumOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enum_id: int = Field(validation_alias=AliasChoices('enum_id', 'id'))
    value: str
    sort_order: Optional[int] = Field(None, validation_alias=AliasChoices('sort_order', 'sort'))


class FieldDefinition(BaseModel):
    """An entry in the custom field catalog of an entity kind. Complete whether or not any entity uses the field."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    code: Optional[str] = None
    type: str
    enum_options: list[EnumOption] = Field(default_factory=list, validation_alias=AliasChoices('enum_options', 'enums'))

    @field_validator('enum_options', mode='before')
    @classmethod
    def none_to_list(cls, v):
        return v or []

    @property
    def is_enumerated(self) -> bool:
        return self.type in ENUMERATED_FIELD_TYPES

    def sorted_options(self) -> list[EnumOption]:
        """Options in catalog sort order, falling back to the value when Kommo gives no sort."""
        return sorted(
            self.enum_options,
            key=lambda o: (o.sort_order is None, o.sort_order if o.sort_order is not None else 0, o.value.lower()),
        )


class ResolvedField(BaseModel):
    field_id: PositiveInt
    source: ResolutionSource


class FieldUpdateValue(BaseModel):
    value: str
    enum_id: Optional[int] = None


class FieldUpdate(BaseModel):
    field_id: int
    values: list[FieldUpdateValue]

    def to_kommo(self) -> dict:
        return self.model_dump(exclude_none=True)


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class BatchUpdateOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    updated_fields: int = 0
    errors: tuple[FieldError, ...] = ()
    error: Optional[str] = None


class UpdateFieldsRequest(BaseModel):
    fields: dict[str, Union[str, int, float, bool]] = Field(
        ..., description='Map of field name, code or id to the new value'
    )


class CustomFieldEnumData(BaseModel):
    id: Optional[int] = None
    value: str
    sort: int = 0


class CustomFieldCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: CustomFieldType
    enums: Optional[list[CustomFieldEnumData]] = None
    is_api_only: Optional[bool] = None


class CustomFieldChange(BaseModel):
    name: Optional[str] = None
    enums: Optional[list[CustomFieldEnumData]] = None
    is_api_only: Optional[bool] = None
