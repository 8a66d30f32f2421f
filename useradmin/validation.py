"""Declarative field validation for editor requests.

Rules are grouped per field in a :class:`FieldRules` entry. A field marked
``sometimes`` is only validated when the client supplied it; otherwise every
rule runs. Rules other than :class:`Required` skip empty values, so a missing
value reports a single "required" message rather than a cascade of failures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from email_validator import EmailNotValidError, validate_email


def _label(name: str) -> str:
    return name.replace("_", " ")


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


class Rule:
    """A single validation constraint."""

    implicit = False

    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        raise NotImplementedError


class Required(Rule):
    implicit = True

    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        if _is_empty(value):
            return f"The {_label(name)} field is required."
        return None


class Email(Rule):
    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        try:
            # Accept single-label and special-use domains such as localhost.
            validate_email(str(value), check_deliverability=False, globally_deliverable=False)
        except EmailNotValidError:
            return f"The {_label(name)} must be a valid email address."
        return None


@dataclass
class Max(Rule):
    limit: int

    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        if len(str(value)) > self.limit:
            return f"The {_label(name)} must not be greater than {self.limit} characters."
        return None


class Confirmed(Rule):
    """Require ``<field>_confirmation`` to carry the same value."""

    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        if data.get(f"{name}_confirmation") != value:
            return f"The {_label(name)} confirmation does not match."
        return None


@dataclass
class Unique(Rule):
    """Reject values already owned by another record.

    ``exists`` receives the candidate value and the identifier to ignore (the
    record being edited, or ``None``).
    """

    exists: Callable[[str, Optional[int]], bool]
    ignore_id: Optional[int] = None

    def check(self, name: str, value: object, data: Mapping[str, object]) -> Optional[str]:
        if self.exists(str(value), self.ignore_id):
            return f"The {_label(name)} has already been taken."
        return None


@dataclass
class FieldRules:
    rules: Sequence[Rule] = field(default_factory=list)
    sometimes: bool = False


def validate(
    rules: Mapping[str, FieldRules],
    data: Mapping[str, object],
    *,
    supplied: Optional[Callable[[str], bool]] = None,
) -> Dict[str, List[str]]:
    """Run ``rules`` against ``data`` and return messages keyed by field.

    ``supplied`` decides whether a field was sent by the client; it defaults
    to key membership in ``data``. An empty result means the data is valid.
    """

    if supplied is None:
        supplied = data.__contains__

    errors: Dict[str, List[str]] = {}
    for name, field_rules in rules.items():
        if field_rules.sometimes and not supplied(name):
            continue
        value = data.get(name)
        for rule in field_rules.rules:
            if _is_empty(value) and not rule.implicit:
                continue
            message = rule.check(name, value, data)
            if message is not None:
                errors.setdefault(name, []).append(message)
    return errors


__all__ = [
    "Confirmed",
    "Email",
    "FieldRules",
    "Max",
    "Required",
    "Rule",
    "Unique",
    "validate",
]
