from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://api.useblock.tech"
DEFAULT_POLL_INTERVAL = 2
DEFAULT_POLL_TIMEOUT = 180


class JobStatus(str, Enum):
    queued = "queued"
    leased = "leased"
    in_progress = "in_progress"
    waiting_2fa = "waiting_2fa"
    success = "success"
    error = "error"


class ActionType(str, Enum):
    book_appointment = "BookAppointment"
    get_availability = "GetAvailability"

    @property
    def subject(self) -> str:
        """Human name of the job used in error messages"""
        if self is ActionType.book_appointment:
            return "Booking"
        return "Availability check"


class BlockApiCredentials(BaseSettings):
    """API key and endpoint, read from BLOCK_API_KEY, BLOCK_API_BASE_URL and
    BLOCK_API_REQUEST_TIMEOUT unless passed explicitly."""

    model_config = SettingsConfigDict(
        env_prefix="BLOCK_API_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr = Field(validation_alias=AliasChoices("api_key", "BLOCK_API_KEY"))
    base_url: str = DEFAULT_BASE_URL
    request_timeout: float = 30.0

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, value: str) -> str:
        return value.rstrip("/") or DEFAULT_BASE_URL


class PollingConfig(BaseModel):
    interval: float = float(DEFAULT_POLL_INTERVAL)
    timeout: float = float(DEFAULT_POLL_TIMEOUT)


class ActionRequest(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: ActionType
    connection_id: str = Field(alias="connectionId")
    payload: dict[str, Any]

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Job(BaseModel):
    """A remote job as returned by GET /v1/jobs/{id}; unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    status: Optional[str] = None
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class JobResult(BaseModel):
    job_id: str
    status: JobStatus
    raw_response: dict
    elapsed_time: float
    attempts: int


class ExecutionRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    json_data: dict = Field(alias="json")
    paired_item: dict = Field(alias="pairedItem")

    @classmethod
    def for_item(cls, index: int, data: dict) -> "ExecutionRecord":
        return cls(json=data, pairedItem={"item": index})

    def to_host(self) -> dict:
        return self.model_dump(by_alias=True)


def _unwrap_collection(value: Any, key: str) -> Any:
    # The host nests fixed collections one level deep: {"customer": {"customer": {...}}}
    if isinstance(value, dict) and isinstance(value.get(key), dict):
        return value[key]
    return value


def _without_unset(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value not in (None, "")}


def _to_int(value: Union[int, float, str]) -> int:
    if isinstance(value, bool):
        raise ValueError("expected a number")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    try:
        return int(text, 10)
    except ValueError:
        return int(float(text))


class OperationParams(BaseModel, ABC):
    """Parameters shared by every operation.

    Subclasses set `action` and implement `to_payload`, which builds the
    action payload and leaves out every optional field that is unset.
    """

    model_config = ConfigDict(populate_by_name=True)

    action: ClassVar[ActionType]

    connection_id: str = Field(alias="connectionId", min_length=1)
    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL, alias="pollInterval", ge=1, le=60
    )
    poll_timeout: float = Field(
        default=DEFAULT_POLL_TIMEOUT, alias="pollTimeout", ge=10, le=600
    )
    duration: Optional[int] = None

    @field_validator("poll_interval", "poll_timeout", mode="before")
    @classmethod
    def _default_when_falsy(cls, value, info):
        if value in (None, "", 0):
            return cls.model_fields[info.field_name].default
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _normalize_duration(cls, value):
        if value in (None, "", 0):
            return None
        return _to_int(value)

    @property
    def polling(self) -> PollingConfig:
        return PollingConfig(interval=self.poll_interval, timeout=self.poll_timeout)

    @abstractmethod
    def to_payload(self) -> dict[str, Any]:
        ...

    def to_action_request(self) -> ActionRequest:
        return ActionRequest(
            action=self.action,
            connectionId=self.connection_id,
            payload=self.to_payload(),
        )


class Customer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(default="", alias="firstName")
    last_name: str = Field(default="", alias="lastName")
    phone: str = ""
    email: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        data = {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
        }
        if self.email:
            data["email"] = self.email
        return data


class ServiceAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = ""
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, alias="zipCode")
    country: Optional[str] = None
    room: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return _without_unset(
            {
                "address": self.address,
                "city": self.city,
                "state": self.state,
                "zipCode": self.zip_code,
                "country": self.country,
                "room": self.room,
            }
        )


class BusinessHours(BaseModel):
    start: str = ""
    end: Optional[str] = None


class BookAppointmentParams(OperationParams):
    action: ClassVar[ActionType] = ActionType.book_appointment

    datetime: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    service: str = Field(min_length=1)
    customer: Customer
    note: Optional[str] = None
    timezone: Optional[str] = None
    service_address: Optional[ServiceAddress] = Field(
        default=None, alias="serviceAddress"
    )

    @model_validator(mode="before")
    @classmethod
    def _unwrap_collections(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            data["customer"] = _unwrap_collection(data.get("customer") or {}, "customer")
            if "serviceAddress" in data:
                data["serviceAddress"] = (
                    _unwrap_collection(data["serviceAddress"], "serviceAddress") or None
                )
        return data

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "datetime": self.datetime,
            "provider": self.provider,
            "service": self.service,
            "customer": self.customer.to_payload(),
        }
        if self.duration:
            payload["duration"] = self.duration
        if self.note:
            payload["note"] = self.note
        if self.timezone:
            payload["timezone"] = self.timezone
        if self.service_address is not None and self.service_address.address:
            payload["serviceAddress"] = self.service_address.to_payload()
        return payload


class GetAvailabilityParams(OperationParams):
    action: ClassVar[ActionType] = ActionType.get_availability

    start_date: str = Field(alias="startDate", min_length=1)
    end_date: str = Field(alias="endDate", min_length=1)
    provider: Optional[str] = None
    business_hours: Optional[BusinessHours] = Field(default=None, alias="businessHours")

    @model_validator(mode="before")
    @classmethod
    def _unwrap_collections(cls, data):
        if isinstance(data, dict) and "businessHours" in data:
            data = dict(data)
            data["businessHours"] = (
                _unwrap_collection(data["businessHours"], "businessHours") or None
            )
        return data

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "startDate": self.start_date,
            "endDate": self.end_date,
        }
        if self.provider:
            payload["provider"] = self.provider
        if self.duration:
            payload["duration"] = self.duration
        if self.business_hours is not None and self.business_hours.start:
            payload["businessHours"] = _without_unset(
                {"start": self.business_hours.start, "end": self.business_hours.end}
            )
        return payload
