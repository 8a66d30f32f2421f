"""Record editor for user accounts."""

from __future__ import annotations

from typing import ContextManager, Dict, Optional, Sequence, Set, Tuple

from .database import Database, UniquenessConflict, hash_password
from .editor import Data, RecordEditor, RecordNotFound, ValidationError
from .models import User, UserInput
from .validation import Confirmed, Email, FieldRules, Max, Required, Unique

MAX_LENGTH = 255


class UsersEditor(RecordEditor[User]):
    """Create, edit and remove users on behalf of the grid widget."""

    input_model = UserInput

    def __init__(self, database: Database) -> None:
        self._database = database

    def _email_exists(self, email: str, ignore_id: Optional[int]) -> bool:
        return self._database.email_taken(email, ignore_id=ignore_id)

    def create_rules(self) -> Dict[str, FieldRules]:
        return {
            "email": FieldRules([Required(), Email(), Max(MAX_LENGTH), Unique(self._email_exists)]),
            "name": FieldRules([Required(), Max(MAX_LENGTH)]),
            "password": FieldRules([Required(), Max(MAX_LENGTH), Confirmed()]),
        }

    def edit_rules(self, record: User) -> Dict[str, FieldRules]:
        return {
            "email": FieldRules(
                [Required(), Max(MAX_LENGTH), Email(), Unique(self._email_exists, ignore_id=record.id)],
                sometimes=True,
            ),
            "name": FieldRules([Required(), Max(MAX_LENGTH)], sometimes=True),
            "password": FieldRules([Required(), Max(MAX_LENGTH)], sometimes=True),
        }

    def validate_batch(self, rows: Sequence[Tuple[Optional[User], UserInput]]) -> None:  # type: ignore[override]
        # Storage lookups cannot see the other rows of the same request.
        seen: Set[str] = set()
        for _, data in rows:
            if not data.supplied("email") or not data.email:
                continue
            key = data.email.lower()
            if key in seen:
                raise ValidationError({"email": ["The email has already been taken."]})
            seen.add(key)

    def write_batch(self) -> ContextManager[object]:
        return self._database.transaction()

    def changes(self, data: UserInput) -> Data:  # type: ignore[override]
        return dict(data.changes())

    def before_save(self, record: Optional[User], data: Data) -> Data:
        # The only place a password is hashed, for both create and edit.
        password = data.get("password")
        if password:
            data = {**data, "password": hash_password(str(password))}
        else:
            data = {key: value for key, value in data.items() if key != "password"}
        return data

    def find(self, record_id: int) -> Optional[User]:
        return self._database.get_user(record_id)

    def insert(self, data: Data) -> User:
        try:
            return self._database.insert_user(
                name=str(data["name"]),
                email=str(data["email"]),
                password=str(data["password"]),
            )
        except UniquenessConflict as exc:
            raise ValidationError({exc.field: [f"The {exc.field} has already been taken."]}) from exc

    def update(self, record: User, data: Data) -> User:
        try:
            updated = self._database.update_user(record.id, **data)
        except UniquenessConflict as exc:
            raise ValidationError({exc.field: [f"The {exc.field} has already been taken."]}) from exc
        if updated is None:
            raise RecordNotFound(record.id)
        return updated

    def delete(self, record: User) -> None:
        if not self._database.delete_user(record.id):
            raise RecordNotFound(record.id)

    def serialize(self, record: User) -> Data:
        return record.to_row()


__all__ = ["MAX_LENGTH", "UsersEditor"]
