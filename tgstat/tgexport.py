"""Reader for Telegram chat exports (``result.json``)."""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class TextEntity(BaseModel):
    """A fragment of message text."""
    type: str = "plain"
    text: str = ""


class Message(BaseModel):
    """A single chat message. Service messages have no sender and an empty ``from_``."""
    from_: str = Field(default="", alias="from")
    text_entities: List[TextEntity] = Field(default_factory=list)
    date: datetime

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('from_', mode='before')
    @classmethod
    def null_sender(cls, v: Optional[str]):
        return "" if v is None else v

    @field_validator('date', mode='before')
    @classmethod
    def parse_date(cls, v):
        """Export dates carry no zone; they are read as UTC."""
        if isinstance(v, str):
            return datetime.strptime(v, DATE_FORMAT).replace(tzinfo=timezone.utc)
        return v


class Result(BaseModel):
    """The contents of a ``result.json`` file."""
    messages: List[Message] = Field(default_factory=list)


def read_file(path: str) -> Result:
    """Read and decode a chat export."""
    with open(path, 'rb') as f:
        raw = f.read()

    try:
        return Result.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(f"Failed to decode {path}: {e}") from e
