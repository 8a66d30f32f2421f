"""Domain models for the user administration service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the administration database.

    The password hash is intentionally absent: it never leaves the storage
    layer once written.
    """

    id: int
    name: str
    email: str
    created_at: datetime
    updated_at: datetime

    def to_row(self) -> Dict[str, object]:
        """Serialise the user the way the grid widget expects a row."""

        return {
            "DT_RowId": f"row_{self.id}",
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class UserInput(BaseModel):
    """Field values submitted by the editor for a single row.

    Every field is optional so that an edit only touches the attributes the
    client actually sent; use :meth:`supplied` to tell "absent" from "empty".
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None
    password_confirmation: Optional[str] = None

    @field_validator("email", "name")
    @classmethod
    def _strip(cls, value: Optional[str]) -> Optional[str]:
        # Passwords are compared and hashed verbatim.
        if value is None:
            return None
        return value.strip()

    def supplied(self, field: str) -> bool:
        return field in self.model_fields_set

    def changes(self) -> Dict[str, Optional[str]]:
        """Return the persistable attributes that were supplied."""

        return self.model_dump(include={"email", "name", "password"}, exclude_unset=True)


__all__ = ["User", "UserInput"]
