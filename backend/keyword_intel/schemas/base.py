"""Shared pydantic base for cached documents.

Cached documents are stored with camelCase keys so payloads written by
other services stay readable; Python code uses snake_case attributes.
Unknown fields are ignored on decode.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Serialize for storage (camelCase, JSON-compatible)."""
        return self.model_dump(mode="json", by_alias=True)
