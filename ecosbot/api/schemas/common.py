"""
Shared schema base

The LMS client speaks camelCase JSON; Python code uses snake_case fields.
Timestamps always leave the API as UTC with an explicit offset, including
the naive values SQLite hands back.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ...core.constants import ensure_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("*", mode="after")
    @classmethod
    def _timestamps_in_utc(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class StatusResponse(CamelModel):
    status: str = "success"
    message: str
