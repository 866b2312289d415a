from datetime import datetime, timezone
from typing import Annotated, List
from pydantic import AfterValidator, BaseModel, Field


def to_naive_utc(value: datetime) -> datetime:
    """Store timestamps as naive UTC"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDateTime = Annotated[datetime, AfterValidator(to_naive_utc)]


class MessageResponse(BaseModel):
    message: str


class ReorderRequest(BaseModel):
    """Complete ordered list of ids"""
    ids: List[str] = Field(..., min_length=1)
