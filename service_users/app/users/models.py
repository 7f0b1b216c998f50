"""
User data models for the Users Service.
"""

from typing import Generic, List, TypeVar
from dataclasses import dataclass

from pydantic import BaseModel, Field, TypeAdapter


T = TypeVar("T")


class UserCreateRequest(BaseModel):
    """Request model for creating a user. The id is assigned by the store.

    Binding is type-only: omitted fields take their zero value.
    """
    name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Email address, not unique")
    age: int = Field(default=0, description="Age in years")


class User(BaseModel):
    """A stored user."""
    id: int = Field(..., description="Store-assigned identifier")
    name: str = ""
    email: str = ""
    age: int = 0


class UserUpdateRequest(User):
    """Request model for a full replace by id. The id selects the row and is required."""


@dataclass
class ReadResult(Generic[T]):
    """Value returned by a read together with its provenance."""
    data: T
    cached: bool = False


USER_ADAPTER = TypeAdapter(User)
USER_LIST_ADAPTER = TypeAdapter(List[User])
