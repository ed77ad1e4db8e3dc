"""ObjectId handling shared by the user, chat and payment models."""

from __future__ import annotations

from typing import Annotated, Any, List

from bson import ObjectId
from bson.errors import InvalidId
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator

from ..errors import ValidationError


def _coerce_object_id(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str):
        raise TypeError(f"expected an ObjectId or hex string, got {type(value).__name__}")
    text = value.strip()
    if not ObjectId.is_valid(text):
        raise ValueError("not a 24 character hex ObjectId")
    return ObjectId(text)


# Stored as ObjectId, rendered as its hex string in every API payload
PyObjectId = Annotated[
    ObjectId,
    BeforeValidator(_coerce_object_id),
    PlainSerializer(str, return_type=str),
]

# likes / passes / matches arrays on a user
ObjectIdList = List[PyObjectId]


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    """Turn a path or body identifier into an ObjectId.

    Raises ``ValidationError("Invalid <label>")`` so malformed ids answer 400
    before any query runs.
    """

    try:
        return _coerce_object_id(value)
    except (TypeError, ValueError, InvalidId):
        raise ValidationError(f"Invalid {label}") from None


__all__ = ["ObjectIdList", "PyObjectId", "parse_object_id"]
