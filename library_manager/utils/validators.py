import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

DATE_FORMAT = "%Y-%m-%d"

_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")

# SQLite INTEGER is a signed 64-bit value.
INTEGER_MIN = -(2 ** 63)
INTEGER_MAX = 2 ** 63 - 1


class FailureKind(str, Enum):
    EMPTY_FIELD = "EmptyField"
    NOT_NUMERIC = "NotNumeric"
    INVALID_DATE_FORMAT = "InvalidDateFormat"
    UNKNOWN_REFERENCE = "UnknownReference"
    DUPLICATE_ID = "DuplicateId"


@dataclass(frozen=True)
class FieldError:
    field: str
    kind: FailureKind
    message: str


class ValidationFailure(ValueError):
    """Raised when one or more fields of a write fail their rules.

    All failing fields are reported together, in the order their rules
    were declared.
    """

    def __init__(self, errors: Sequence[FieldError]) -> None:
        self.errors: List[FieldError] = list(errors)
        summary = ", ".join(f"{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Validation failed ({summary})")

    @property
    def messages(self) -> Dict[str, str]:
        return {e.field: e.message for e in self.errors}

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


# ------------------------- Checks ------------------------- #
def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def required(value: Any) -> Optional[FailureKind]:
    if _is_blank(value):
        return FailureKind.EMPTY_FIELD
    return None


def numeric(value: Any) -> Optional[FailureKind]:
    """Whole numbers that fit a 64-bit integer; ``True``/``False`` are not numbers here."""
    if isinstance(value, bool):
        return FailureKind.NOT_NUMERIC
    if isinstance(value, str) and _INTEGER_PATTERN.fullmatch(value.strip()):
        value = int(value.strip())
    if isinstance(value, int) and INTEGER_MIN <= value <= INTEGER_MAX:
        return None
    return FailureKind.NOT_NUMERIC


def strict_date(value: Any) -> Optional[FailureKind]:
    """Exact ``YYYY-MM-DD`` text that is also a real calendar date.

    ``2016-3-15`` fails on the missing padding, ``2016-02-30`` on the
    calendar.
    """
    if isinstance(value, datetime):
        return FailureKind.INVALID_DATE_FORMAT
    if isinstance(value, date):
        return None
    if not isinstance(value, str) or not _DATE_PATTERN.fullmatch(value):
        return FailureKind.INVALID_DATE_FORMAT
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return FailureKind.INVALID_DATE_FORMAT
    return None


# ------------------------- Rule types ------------------------- #
@dataclass(frozen=True)
class Required:
    message: str
    allow_null: bool = False

    def check(self, value: Any) -> Optional[FailureKind]:
        if value is None and self.allow_null:
            return None
        return required(value)


@dataclass(frozen=True)
class Numeric:
    message: str

    def check(self, value: Any) -> Optional[FailureKind]:
        if _is_blank(value):
            return None
        return numeric(value)


@dataclass(frozen=True)
class StrictDate:
    message: str

    def check(self, value: Any) -> Optional[FailureKind]:
        if _is_blank(value):
            return None
        return strict_date(value)


Rule = Union[Required, Numeric, StrictDate]
RuleSet = Mapping[str, Sequence[Rule]]


def validate(values: Mapping[str, Any], rules: RuleSet) -> List[FieldError]:
    """Run every field's rules, keeping the first failure of each field."""
    errors: List[FieldError] = []
    for field_name, field_rules in rules.items():
        value = values.get(field_name)
        for rule in field_rules:
            kind = rule.check(value)
            if kind is not None:
                errors.append(FieldError(field_name, kind, rule.message))
                break
    return errors


def ensure_valid(values: Mapping[str, Any], rules: RuleSet) -> None:
    errors = validate(values, rules)
    if errors:
        raise ValidationFailure(errors)
