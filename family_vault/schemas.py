"""
Database Schemas and API bodies for the vault

Each record model maps to a MongoDB collection:
- User -> users
- Document -> documents

Records are stored with snake_case keys; the API speaks camelCase, so the
*Out models carry the aliases used on the wire.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

NATIONAL_ID_PATTERN = r"^\d{12}$"

StrId = Annotated[str, BeforeValidator(str)]


# ------------------------
# Records
# ------------------------

class User(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Unique, lowercased email")
    password_hash: str = Field(..., description="BCrypt hashed password")
    national_id: Optional[str] = Field(None, description="12-digit national ID, omitted when absent")
    family_members: List[ObjectId] = []


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    owner_id: ObjectId = Field(..., description="Owning user id")
    file_path: str
    file_name: str
    mime_type: str
    file_size: int
    document_type: str = Field(..., description="Category, e.g. Passport")
    description: str = ""
    shared_with: List[ObjectId] = []


# ------------------------
# Responses
# ------------------------

class UserOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: StrId = Field(..., alias="_id")
    name: str
    email: str
    national_id: Optional[str] = None
    family_members: List[StrId] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DocumentOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: StrId = Field(..., alias="_id")
    owner_id: StrId = Field(..., alias="userId")
    file_name: str = Field(..., alias="fileName")
    mime_type: str = Field(..., alias="fileMimeType")
    file_size: int = Field(..., alias="fileSize")
    document_type: str = Field(..., alias="documentType")
    description: str = ""
    shared_with: List[StrId] = Field([], alias="sharedWith")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


def user_out(record: Dict[str, Any]) -> Dict[str, Any]:
    return UserOut.model_validate(record).model_dump(mode="json", by_alias=True)


def document_out(record: Dict[str, Any]) -> Dict[str, Any]:
    return DocumentOut.model_validate(record).model_dump(mode="json", by_alias=True)


# ------------------------
# Requests
# ------------------------

class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterBody(_Body):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    national_id: Optional[str] = Field(None, pattern=NATIONAL_ID_PATTERN)

    @field_validator("national_id", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LoginBody(_Body):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdateBody(_Body):
    """Only these fields of a profile can change; anything else is ignored."""

    name: Optional[str] = None
    national_id: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {field: getattr(self, field) for field in self.model_fields_set}


class DocumentUpdateBody(_Body):
    document_type: Optional[str] = None
    description: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {field: getattr(self, field) for field in self.model_fields_set}


class ShareBody(_Body):
    family_member_ids: List[str]


class FamilyLinkBody(_Body):
    identifier: str = Field(..., min_length=1)
    identifier_type: str = Field(..., min_length=1)
