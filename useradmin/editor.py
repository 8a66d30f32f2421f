"""Server side of the grid widget's record editor protocol.

A client submits ``{"action": ..., "data": {row_id: {field: value}}}`` and
expects ``{"data": [row, ...]}`` back, or ``fieldErrors`` / ``error`` entries
when the request is rejected. :class:`RecordEditor` implements the dispatch
and the lifecycle around each write; subclasses provide the rules, the
storage calls and, optionally, hook overrides.

Hook order per action::

    create: validate -> creating -> saving -> insert -> created -> saved
    edit:   find -> validate -> updating -> saving -> update -> updated -> saved
    remove: find -> validate -> deleting -> delete -> deleted
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import ContextManager, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

import pydantic
from pydantic import BaseModel

from .validation import FieldRules, validate

logger = logging.getLogger("useradmin.editor")

ACTION_CREATE = "create"
ACTION_EDIT = "edit"
ACTION_REMOVE = "remove"
ACTIONS = (ACTION_CREATE, ACTION_EDIT, ACTION_REMOVE)

RecordT = TypeVar("RecordT")

Data = Dict[str, object]


class EditorError(Exception):
    """Base class for errors reported back to the editor client."""


class ValidationError(EditorError):
    """One or more submitted fields failed validation."""

    def __init__(self, errors: Mapping[str, List[str]]) -> None:
        self.errors: Dict[str, List[str]] = {name: list(messages) for name, messages in errors.items()}
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Validation failed for: {fields}")

    def field_errors(self) -> List[Dict[str, str]]:
        return [
            {"name": name, "status": " ".join(messages)}
            for name, messages in self.errors.items()
        ]


class RecordNotFound(EditorError):
    def __init__(self, record_id: object) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


@dataclass(frozen=True)
class EditorRequest:
    action: str
    rows: Dict[str, Data]

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "EditorRequest":
        action = payload.get("action")
        if not isinstance(action, str) or action not in ACTIONS:
            raise EditorError(f"Unsupported editor action: {action!r}")

        raw_rows = payload.get("data")
        if not isinstance(raw_rows, Mapping) or not raw_rows:
            raise EditorError("Editor request contains no rows")

        rows: Dict[str, Data] = {}
        for key, values in raw_rows.items():
            if not isinstance(values, Mapping):
                raise EditorError(f"Row {key!r} must be an object of field values")
            rows[str(key)] = dict(values)
        return cls(action=action, rows=rows)


def parse_row_id(key: str) -> int:
    """Turn a client row key (``"5"`` or ``"row_5"``) into a record id."""

    raw = key[4:] if key.startswith("row_") else key
    try:
        return int(raw)
    except ValueError as exc:
        raise RecordNotFound(key) from exc


class RecordEditor(Generic[RecordT]):
    """Validation and hook pipeline for create, edit and remove actions."""

    input_model: Type[BaseModel]

    # ------------------------------------------------------------------
    # Rules and storage, provided by subclasses
    # ------------------------------------------------------------------
    def create_rules(self) -> Dict[str, FieldRules]:
        raise NotImplementedError

    def edit_rules(self, record: RecordT) -> Dict[str, FieldRules]:
        raise NotImplementedError

    def remove_rules(self, record: RecordT) -> Dict[str, FieldRules]:
        return {}

    def find(self, record_id: int) -> Optional[RecordT]:
        raise NotImplementedError

    def insert(self, data: Data) -> RecordT:
        raise NotImplementedError

    def update(self, record: RecordT, data: Data) -> RecordT:
        raise NotImplementedError

    def delete(self, record: RecordT) -> None:
        raise NotImplementedError

    def serialize(self, record: RecordT) -> Data:
        raise NotImplementedError

    def write_batch(self) -> ContextManager[object]:
        """Scope wrapping every write of one request.

        Storage-backed editors return a transaction here so that a failure on
        a later row undoes the earlier ones.
        """

        return nullcontext()

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------
    def parse_input(self, values: Data) -> BaseModel:
        try:
            return self.input_model.model_validate(values)
        except pydantic.ValidationError as exc:
            fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
            raise EditorError(f"Malformed values for: {', '.join(fields)}") from exc

    def changes(self, data: BaseModel) -> Data:
        """Return the attributes to persist: only those the client supplied."""

        return data.model_dump(exclude_unset=True)

    def validate_create(self, data: BaseModel) -> None:
        self._check(self.create_rules(), data)

    def validate_edit(self, record: RecordT, data: BaseModel) -> None:
        self._check(self.edit_rules(record), data)

    def validate_remove(self, record: RecordT, data: BaseModel) -> None:
        self._check(self.remove_rules(record), data)

    def validate_batch(self, rows: Sequence[Tuple[Optional[RecordT], BaseModel]]) -> None:
        """Check constraints spanning the rows of one request.

        Runs after every row passed its own rules and before any write.
        ``rows`` pairs the existing record (``None`` on create) with its input.
        """

    def _check(self, rules: Mapping[str, FieldRules], data: BaseModel) -> None:
        errors = validate(rules, data.model_dump(), supplied=data.model_fields_set.__contains__)
        if errors:
            raise ValidationError(errors)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------
    def creating(self, record: Optional[RecordT], data: Data) -> Data:
        return data

    def created(self, record: RecordT, data: Data) -> RecordT:
        return record

    def updating(self, record: RecordT, data: Data) -> Data:
        return data

    def updated(self, record: RecordT, data: Data) -> RecordT:
        return record

    def before_save(self, record: Optional[RecordT], data: Data) -> Data:
        """Fired after ``creating``/``updating``, right before the write."""

        return data

    def after_save(self, record: RecordT, data: Data) -> RecordT:
        """Fired after ``created``/``updated``."""

        return record

    def before_delete(self, record: RecordT, data: Data) -> None:
        """The record still exists in storage."""

    def after_delete(self, record: RecordT, data: Data) -> None:
        """The record is gone from storage; ``record`` holds its last state."""

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def process(self, payload: Mapping[str, object]) -> Dict[str, object]:
        """Handle one editor request and build the wire response."""

        try:
            request = EditorRequest.from_payload(payload)
            if request.action == ACTION_CREATE:
                records = self.create(request.rows)
            elif request.action == ACTION_EDIT:
                records = self.edit(request.rows)
            else:
                self.remove(request.rows)
                records = []
        except ValidationError as exc:
            logger.debug("Editor request rejected: %s", exc)
            return {"data": [], "fieldErrors": exc.field_errors()}
        except EditorError as exc:
            logger.info("Editor request failed: %s", exc)
            return {"data": [], "error": str(exc)}

        return {"data": [self.serialize(record) for record in records]}

    def create(self, rows: Mapping[str, Data]) -> List[RecordT]:
        inputs = [self.parse_input(values) for values in rows.values()]
        for data in inputs:
            self.validate_create(data)
        self.validate_batch([(None, data) for data in inputs])

        records: List[RecordT] = []
        with self.write_batch():
            for data in inputs:
                values = self.changes(data)
                values = self.creating(None, values)
                values = self.before_save(None, values)
                record = self.insert(values)
                record = self.created(record, values)
                record = self.after_save(record, values)
                records.append(record)
        for record in records:
            logger.info("Created record %s", self._describe(record))
        return records

    def edit(self, rows: Mapping[str, Data]) -> List[RecordT]:
        pending: List[Tuple[RecordT, BaseModel]] = []
        for key, values in rows.items():
            record = self._load(key)
            data = self.parse_input(values)
            self.validate_edit(record, data)
            pending.append((record, data))
        self.validate_batch(pending)

        records: List[RecordT] = []
        written: List[str] = []
        with self.write_batch():
            for record, data in pending:
                values = self.changes(data)
                values = self.updating(record, values)
                values = self.before_save(record, values)
                updated = self.update(record, values)
                updated = self.updated(updated, values)
                updated = self.after_save(updated, values)
                records.append(updated)
                written.append(", ".join(sorted(values)) or "none")
        for record, fields in zip(records, written):
            logger.info("Updated record %s (fields: %s)", self._describe(record), fields)
        return records

    def remove(self, rows: Mapping[str, Data]) -> None:
        pending: List[Tuple[RecordT, Data]] = []
        for key, values in rows.items():
            record = self._load(key)
            # Field values of a remove row are informational only.
            self.validate_remove(record, self.input_model())
            pending.append((record, values))

        with self.write_batch():
            for record, values in pending:
                self.before_delete(record, values)
                self.delete(record)
                self.after_delete(record, values)
        for record, _ in pending:
            logger.info("Removed record %s", self._describe(record))

    def _load(self, key: str) -> RecordT:
        record_id = parse_row_id(key)
        record = self.find(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    @staticmethod
    def _describe(record: object) -> str:
        return str(getattr(record, "id", record))


__all__ = [
    "ACTIONS",
    "ACTION_CREATE",
    "ACTION_EDIT",
    "ACTION_REMOVE",
    "EditorError",
    "EditorRequest",
    "RecordEditor",
    "RecordNotFound",
    "ValidationError",
    "parse_row_id",
]
