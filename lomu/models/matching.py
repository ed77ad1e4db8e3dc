from enum import Enum

from pydantic import BaseModel


class MatchOutcome(str, Enum):
    """Relationship transition produced by a swipe."""

    LIKED = "liked"
    MATCHED = "matched"
    PASSED = "passed"


class LikeResponse(BaseModel):
    message: str
    match: bool


class PassResponse(BaseModel):
    message: str


__all__ = ["LikeResponse", "MatchOutcome", "PassResponse"]
