"""JSON file storage for the User Directory MCP server.

This module provides the flat-file user database through the UserStore class
and input validation using Pydantic models. The whole document is read on every
access and rewritten on every insert.

Concurrent writers are not supported: two processes inserting at the same time
can overwrite each other's records or hand out the same id.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

# Configure logging to stderr only (never stdout - corrupts MCP JSON-RPC)
logging.basicConfig(stream=sys.stderr, level=logging.INFO)
logger = logging.getLogger("user-directory.storage")


class NewUser(BaseModel):
    """Fields supplied when creating a user."""

    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., description="Email address")
    address: str = Field(..., description="Postal address")
    phone: str = Field(..., description="Phone number")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject names made only of whitespace."""
        if not v.strip():
            raise ValueError("Name cannot be blank")
        return v.strip()


class UserRecord(BaseModel):
    """A stored user, as written to the JSON document."""

    id: int = Field(..., ge=1, description="Sequential id assigned on insert")
    name: str
    email: str
    address: str
    phone: str


class UserStore:
    """Reads and rewrites the JSON user document."""

    def __init__(self, path: Union[str, Path]):
        """Initialize the store.

        Args:
            path: Location of the JSON document. It is created on first insert.
        """
        self.path = Path(path)
        logger.info(f"UserStore initialized with {self.path}")

    def load(self) -> List[Dict[str, Any]]:
        """Read every record from disk.

        Returns:
            List of user dicts in insertion order

        Raises:
            RuntimeError: If the document cannot be read or is not a JSON array
        """
        if not self.path.exists():
            return []

        try:
            users = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read user database: {e}")
            raise RuntimeError(f"User database read failed: {str(e)}")

        if not isinstance(users, list):
            raise RuntimeError("User database must contain a JSON array")

        return users

    def list_users(self) -> List[Dict[str, Any]]:
        """Return all stored users."""
        return self.load()

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Find a user by id, or None when no record has that id."""
        for user in self.load():
            if user.get("id") == user_id:
                return user
        return None

    def create_user(self, user: Union[NewUser, Dict[str, Any]]) -> int:
        """Append a user and rewrite the document.

        Args:
            user: New user fields, validated against NewUser

        Returns:
            The id assigned to the new record

        Raises:
            pydantic.ValidationError: If the user fields are invalid
            RuntimeError: If the document cannot be read or written
        """
        if not isinstance(user, NewUser):
            user = NewUser.model_validate(user)

        users = self.load()
        user_id = len(users) + 1
        record = UserRecord(id=user_id, **user.model_dump())
        users.append(record.model_dump())

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(users, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write user database: {e}")
            raise RuntimeError(f"User database write failed: {str(e)}")

        logger.info(f"Stored user {user_id}")
        return user_id
