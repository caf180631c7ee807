from datetime import datetime, timezone
from typing import Any, Dict, Iterable

from bson import ObjectId
from pydantic import BaseModel, Field, ConfigDict
from pydantic_core import core_schema


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PyObjectId(ObjectId):
    """ObjectId field: accepts ObjectId or its hex string, dumps as str in JSON mode."""

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any):
        return core_schema.no_info_plain_validator_function(
            cls.validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json")
        )

    @classmethod
    def validate(cls, value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        if isinstance(value, str) and ObjectId.is_valid(value):
            return ObjectId(value)
        raise ValueError(f"Invalid ObjectId: {value!r}")


class VersionedDocument(BaseModel):
    """
    Top-level MongoDB document with an optimistic-lock version.

    ``version`` starts at 1 and is bumped by the repository on every save;
    a save only applies when the stored version still matches.
    """
    id: PyObjectId = Field(default_factory=ObjectId, alias="_id")
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        from_attributes=True,
        use_enum_values=True,
        validate_default=True
    )

    def next_version_update(self, fields: Iterable[str]) -> Dict[str, Any]:
        """$set payload for the given fields plus the bumped version."""
        update = self.model_dump(mode="python", include=set(fields))
        update["version"] = self.version + 1
        update["updated_at"] = utcnow()
        return update
