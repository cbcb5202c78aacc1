"""
Domain models for AppVault.

`AppRecord` mirrors one document of the remote `apps` collection. `AppDraft`
is what callers hand to the collection for create/update; it may carry a
`LocalAsset` that still has to be uploaded before the record is written.
"""
from __future__ import annotations

import mimetypes
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from appvault.image_pipeline import file_extension, resolve_display_image

FILTER_ALL = "All"
DEFAULT_CONTENT_TYPE = "image/png"

WRITABLE_FIELDS = ("name", "url", "description", "category", "image")


class Category(str, Enum):
    CRE = "CRE"
    FINANCE = "Finance"
    FAMILY = "Family"
    FITNESS = "Fitness"
    MEDICAL = "Medical"
    PET_CARE = "Pet Care"
    OTHER = "Other"

    @classmethod
    def default(cls) -> "Category":
        return cls.CRE


def _blank_if_none(value: Any) -> Any:
    return "" if value is None else value


class AppRecord(BaseModel):
    """
    One cataloged application as reported by the remote store.
    """

    id: str = Field(..., min_length=1, description="Store-assigned identifier.")
    name: str = Field(..., min_length=1, description="Display name.")
    url: str = Field(..., min_length=1, description="Scheme-qualified application URL.")
    description: str = Field("", description="Free text.")
    category: Category = Field(default_factory=Category.default)
    image: str = Field("", description="Persistent preview image URL, or empty.")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @field_validator("description", "image", mode="before")
    @classmethod
    def blank_if_none(cls, value: Any) -> Any:
        return _blank_if_none(value)

    @property
    def display_image(self) -> str:
        return resolve_display_image(self.image, self.url)

    def fields(self) -> Dict[str, str]:
        """Writable fields, suitable as defaults for an update."""
        return {
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "category": self.category.value,
            "image": self.image,
        }


class LocalAsset(BaseModel):
    """A user-supplied image file that has not been uploaded yet."""

    filename: str = ""
    content: bytes
    content_type: str = ""

    @property
    def extension(self) -> str:
        return file_extension(self.filename)

    @property
    def effective_content_type(self) -> str:
        return self.content_type or DEFAULT_CONTENT_TYPE

    @classmethod
    def from_path(cls, path: Path | str) -> "LocalAsset":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type or "")


class AppDraft(BaseModel):
    """
    Caller input for creating or editing a record.

    `image` may be an ephemeral preview reference; it is never persisted as is.
    """

    name: str
    url: str
    description: str = ""
    category: Category = Field(default_factory=Category.default)
    image: str = ""
    upload: Optional[LocalAsset] = None

    model_config = {"extra": "forbid"}

    @field_validator("description", "image", mode="before")
    @classmethod
    def blank_if_none(cls, value: Any) -> Any:
        return _blank_if_none(value)

    @field_validator("name", "url")
    @classmethod
    def required_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    def to_fields(self) -> Dict[str, str]:
        """Writable fields as given, without normalization or upload."""
        return {
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "category": self.category.value,
            "image": self.image,
        }


__all__ = [
    "AppDraft",
    "AppRecord",
    "Category",
    "LocalAsset",
    "FILTER_ALL",
    "WRITABLE_FIELDS",
]
