"""
Matching free text against the options of select/multiselect custom fields.

Kommo only accepts an enumerated value when it carries a known enum_id together with the exact option string, so
text like "bogota" has to be mapped onto the option "Bogotá" first. Matching runs through MATCH_RULES from
strictest to loosest. Each rule is tried against every option before moving on to the next rule, so an exact match
on the fifth option beats a substring match on the first.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from kommo_tools.kommo.models import EnumOption, FieldDefinition

MAX_SUGGESTIONS = 5
MIN_WORD_LENGTH = 3

_PUNCTUATION_RE = re.compile(r'[^\w\s]+')
_WHITESPACE_RE = re.compile(r'\s+')


def normalise_option_text(text: str) -> str:
    """
    Casefolds, strips accents, replaces runs of punctuation with a space and collapses whitespace, so that
    "Medellín - Antioquia" and "medellin antioquia" compare equal. Only combining marks are dropped, letters of
    any script are kept.
    """
    text = ''.join(c for c in unicodedata.normalize('NFKD', text) if not unicodedata.combining(c))
    text = _PUNCTUATION_RE.sub(' ', text.casefold())
    return _WHITESPACE_RE.sub(' ', text).strip()


@dataclass(frozen=True)
class MatchText:
    raw: str
    normalised: str

    @classmethod
    def build(cls, text: str) -> 'MatchText':
        return cls(raw=text.strip().casefold(), normalised=normalise_option_text(text))


def _contains_either_way(a: str, b: str) -> bool:
    # An empty string is contained in everything, it mustn't match every option
    if not a or not b:
        return False
    return a in b or b in a


def _exact(search: MatchText, option: MatchText) -> bool:
    return search.raw == option.raw


def _normalised_exact(search: MatchText, option: MatchText) -> bool:
    return bool(search.normalised) and search.normalised == option.normalised


def _substring(search: MatchText, option: MatchText) -> bool:
    return _contains_either_way(search.raw, option.raw)


def _normalised_substring(search: MatchText, option: MatchText) -> bool:
    return _contains_either_way(search.normalised, option.normalised)


def _word_subset(search: MatchText, option: MatchText) -> bool:
    words = [w for w in search.normalised.split() if len(w) >= MIN_WORD_LENGTH]
    return bool(words) and all(w in option.normalised for w in words)


@dataclass(frozen=True)
class MatchRule:
    name: str
    predicate: Callable[[MatchText, MatchText], bool]

    def find(self, search: MatchText, options: list[tuple[EnumOption, MatchText]]) -> Optional[EnumOption]:
        return next((option for option, text in options if self.predicate(search, text)), None)


MATCH_RULES = (
    MatchRule('exact', _exact),
    MatchRule('normalised-exact', _normalised_exact),
    MatchRule('substring', _substring),
    MatchRule('normalised-substring', _normalised_substring),
    MatchRule('word-subset', _word_subset),
)


@dataclass(frozen=True)
class MatchedOption:
    field_id: int
    enum_id: int
    value: str
    rule: str


@dataclass(frozen=True)
class NoMatch:
    field_id: int
    field_name: Optional[str]
    suggestions: list[str] = field(default_factory=list)
    total_options: int = 0

    def message(self, raw_value: str) -> str:
        suggestions = ', '.join(self.suggestions)
        if self.total_options > len(self.suggestions):
            suggestions += '...'
        return (
            f"Value '{raw_value}' is not valid for select field '{self.field_name or self.field_id}'. "
            f'Valid options include: {suggestions}'
        )


@dataclass(frozen=True)
class NotEnumerated:
    field_id: int


MatchResult = Union[MatchedOption, NoMatch, NotEnumerated]


def match_option(field_id: int, raw_value: str, catalog: list[FieldDefinition]) -> MatchResult:
    """
    Finds the option of an enumerated field that best matches raw_value. Fields missing from the catalog, fields
    that aren't select/multiselect and enumerated fields without any options all come back as NotEnumerated and
    are written as plain text.
    """
    definition = next((d for d in catalog if d.id == field_id), None)
    if not definition or not definition.is_enumerated or not definition.enum_options:
        return NotEnumerated(field_id=field_id)

    options = definition.sorted_options()
    search = MatchText.build(raw_value)
    candidates = [(option, MatchText.build(option.value)) for option in options]
    for rule in MATCH_RULES:
        if option := rule.find(search, candidates):
            return MatchedOption(field_id=field_id, enum_id=option.enum_id, value=option.value, rule=rule.name)

    return NoMatch(
        field_id=field_id,
        field_name=definition.name,
        suggestions=[o.value for o in options[:MAX_SUGGESTIONS]],
        total_options=len(options),
    )
