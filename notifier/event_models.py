from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Literal, Mapping

EventOrigin = Literal["broker", "log"]

DEDUP_KEY_SEPARATOR = "|"


def isoformat_utc(moment: datetime) -> str:
    """Render a timestamp as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CanonicalEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., description="Event type, e.g. book.borrowed")
    correlation_id: str = Field(..., description="Originating domain transaction id")
    occurred_at: str = Field(..., description="Producer-assigned ISO-8601 timestamp")
    attributes: Mapping[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Remaining payload fields, read-only",
    )
    origin: EventOrigin = Field(..., description="Ingest path that delivered the event")

    @field_validator("attributes", mode="after")
    @classmethod
    def freeze_attributes(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        # Copy so later changes to the producer's dict cannot leak in
        return MappingProxyType(dict(value))

    @property
    def dedup_key(self) -> str:
        return DEDUP_KEY_SEPARATOR.join((self.kind, self.correlation_id, self.occurred_at))

    def to_outbound(self, received_at: datetime) -> Dict[str, Any]:
        """Build the payload pushed to subscribers of both protocols."""
        data = dict(self.attributes)
        data.update(
            kind=self.kind,
            correlation_id=self.correlation_id,
            occurred_at=self.occurred_at,
            source=self.origin,
        )
        return {
            "type": self.kind,
            "data": data,
            "timestamp": isoformat_utc(received_at),
        }
