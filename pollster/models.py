from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import List

# Constants for datetime handling
DATETIME_FORMAT = "%Y-%m-%d %H:%M"  # minute resolution, 24-hour clock
EPOCH = datetime(1970, 1, 1, 0, 0)


def format_datetime(dt: datetime) -> str:
    """Convert datetime to string in our standard format"""
    return dt.strftime(DATETIME_FORMAT)


def parse_datetime(dt_str: str) -> datetime:
    """Parse datetime from our standard format"""
    return datetime.strptime(dt_str, DATETIME_FORMAT)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


class ServiceStatus(str, Enum):
    """Reachability of a service as seen by the last probe"""
    UNKNOWN = "UNKNOWN"  # Never probed
    UP = "UP"            # Last probe got a 2xx response
    DOWN = "DOWN"        # Last probe failed or got a non-2xx response


class Service(BaseModel):
    """A tracked endpoint and its last known status"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    url: str
    status: ServiceStatus = ServiceStatus.UNKNOWN
    last_check: datetime = Field(default=EPOCH, alias="lastCheck")

    @field_validator("last_check", mode="before")
    @classmethod
    def _parse_last_check(cls, value):
        if isinstance(value, str):
            return parse_datetime(value)
        return value

    @field_validator("last_check")
    @classmethod
    def _truncate_last_check(cls, value: datetime) -> datetime:
        return truncate_to_minute(value)

    @field_serializer("last_check")
    def _serialize_last_check(self, value: datetime) -> str:
        return format_datetime(value)

    def to_document(self) -> dict:
        """Plain dict in the persisted document format (all strings)"""
        return self.model_dump(mode="json", by_alias=True)


class AddServiceRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Label shown for the service")
    url: str = Field(..., min_length=1, description="Endpoint to probe with GET")


class AddServiceResponse(BaseModel):
    id: str


class ServicesResponse(BaseModel):
    """All tracked services in insertion order"""
    services: List[Service]
