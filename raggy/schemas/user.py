"""
User Schemas

required_attributes is an ordered set: duplicates are dropped keeping
the first occurrence.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def normalize_attribute_names(names: List[str]) -> List[str]:
    """Strip names, drop empties and duplicates, keep order."""
    seen = []
    for name in names:
        name = name.strip()
        if not name:
            raise ValueError("Attribute names cannot be empty")
        if name not in seen:
            seen.append(name)
    return seen


class UserCreate(BaseModel):
    id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Caller-supplied user id"
    )
    required_attributes: List[str] = Field(
        default_factory=list,
        description="Attribute names to learn from the user's messages",
        examples=[["name", "city"]]
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("User id cannot be empty")
        return v

    @field_validator("required_attributes")
    @classmethod
    def validate_required_attributes(cls, v: List[str]) -> List[str]:
        return normalize_attribute_names(v)


class UserUpdate(BaseModel):
    """Replace the required attribute list."""
    required_attributes: List[str]

    @field_validator("required_attributes")
    @classmethod
    def validate_required_attributes(cls, v: List[str]) -> List[str]:
        return normalize_attribute_names(v)


class UserResponse(BaseModel):
    id: str
    required_attributes: List[str] = Field(default_factory=list)
    extracted_attributes: Dict[str, str] = Field(default_factory=dict)
    last_extraction_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserAttributesResponse(BaseModel):
    """Extracted attributes of one user."""
    user_id: str
    attributes: Dict[str, str]
    missing_attributes: List[str] = Field(
        default_factory=list,
        description="Required attributes not extracted yet"
    )
    last_extraction_date: Optional[datetime] = None


class ExtractionRunResponse(BaseModel):
    """Outcome of a manual extraction run."""
    user_id: str
    status: str = Field(..., description="'updated', 'unchanged' or 'skipped'")
    attributes: Dict[str, str]
    processed_messages: int = 0
    last_extraction_date: Optional[datetime] = None
