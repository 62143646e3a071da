import json
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class EnrichmentStatus(str, Enum):
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    inprogress = "inprogress"
    inqueue = "inqueue"

    @classmethod
    def classify(cls, raw: Optional[str]) -> Optional["EnrichmentStatus"]:
        """Maps a raw status string to a known status, ignoring case. Unknown values give None"""
        if not raw:
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in (
            EnrichmentStatus.completed,
            EnrichmentStatus.failed,
            EnrichmentStatus.cancelled,
        )


class EnrichmentRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    apollo_link: str = Field(alias="apolloLink")
    no_of_leads: int = Field(alias="noOfLeads")
    file_name: str = Field(alias="fileName")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class StatusSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("enrichment_status", "status")
    )
    record_id: Optional[str] = None
    file_name: Optional[str] = None
    enriched_records: Optional[Any] = None
    credits_involved: Optional[Any] = None
    spreadsheet_url: Optional[str] = None
    progress_percentage: Optional[Any] = None
    queue_position: Optional[Any] = None
    error_message: Optional[str] = None
    cancellation_reason: Optional[str] = None
    requested_leads_count: Optional[Any] = None
    apollo_link: Optional[str] = None
    failure_time: Optional[str] = None
    cancelled_time: Optional[str] = None

    raw_response: dict = Field(default_factory=dict)
    elapsed_time: float = 0.0
    attempt: int = 0

    @field_validator(
        "status",
        "record_id",
        "file_name",
        "spreadsheet_url",
        "error_message",
        "cancellation_reason",
        "apollo_link",
        "failure_time",
        "cancelled_time",
        mode="before",
    )
    @classmethod
    def _text_or_none(cls, value: Any) -> Optional[str]:
        """Text fields accept whatever the service sends; objects and lists are kept as JSON"""
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (dict, list)):
            return json.dumps(value, default=str)
        return str(value)

    @classmethod
    def from_payload(
        cls, payload: Any, elapsed_time: float = 0.0, attempt: int = 0
    ) -> Optional["StatusSnapshot"]:
        """Builds a snapshot from a status response body.

        The service answers either with a bare object or with a one-element
        array holding that object; both give the same snapshot. An empty or
        non-object body gives None.
        """
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict) or not payload:
            return None

        return cls.model_validate(
            {
                **payload,
                "raw_response": payload,
                "elapsed_time": elapsed_time,
                "attempt": attempt,
            }
        )

    @property
    def classified_status(self) -> Optional[EnrichmentStatus]:
        return EnrichmentStatus.classify(self.status)


class PollingConfig(BaseModel):
    poll_interval: float = 10.0
    max_retries: int = 17280  # 48 hours at the default interval
    request_timeout: float = 30.0
    submit_timeout: float = 60.0

    @property
    def estimated_minutes(self) -> int:
        return round(self.max_retries * self.poll_interval / 60)


class NotificationKind(str, Enum):
    failed = "failed"
    cancelled = "cancelled"


class NotificationContext(BaseModel):
    kind: NotificationKind
    record_id: str
    file_name: str
    requested_leads: str
    reason: str
    apollo_link: str
    occurred_at: str
