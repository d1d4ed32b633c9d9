"""Shared model helpers."""

from datetime import UTC, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model whose wire format uses camelCase attribute names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self, exclude_none: bool = False) -> Dict[str, Any]:
        """Dump the model with camelCase keys and JSON-compatible values."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=exclude_none)


def utc_now_iso(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
