import re
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as SchemaError

from errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

NonEmptyStr = Annotated[str, Field(min_length=1)]


class Coordinates(BaseModel):
    latitude: float = 0
    longitude: float = 0


class Location(BaseModel):
    country: NonEmptyStr
    region: NonEmptyStr
    city: NonEmptyStr
    area: NonEmptyStr
    coordinates: Coordinates = Field(default_factory=Coordinates)


class Contact(BaseModel):
    ownerName: NonEmptyStr
    ownerEmail: NonEmptyStr
    adminEmails: list[str] = Field(default_factory=list)

    @field_validator("ownerEmail")
    @classmethod
    def check_owner_email(cls, value):
        if not EMAIL_RE.match(value):
            raise ValueError("Invalid owner email format")
        return value

    @field_validator("adminEmails")
    @classmethod
    def check_admin_emails(cls, value):
        for email in value:
            if not EMAIL_RE.match(email):
                raise ValueError(f"Invalid admin email: {email}")
        return value


class Specifications(BaseModel):
    cpu: str = ""
    memory: str = ""
    storage: str = ""


class Hardware(BaseModel):
    deviceType: Literal["raspberry-pi-4", "raspberry-pi-5", "custom"] = "raspberry-pi-4"
    specifications: Specifications = Field(default_factory=Specifications)


class NetworkRegistration(BaseModel):
    networkId: Optional[str] = None
    ssid: NonEmptyStr
    price: float = Field(ge=0.1)
    description: NonEmptyStr
    location: Location
    contact: Contact
    host: Optional[str] = None
    image: str = ""
    hardware: Hardware = Field(default_factory=Hardware)


class StatusUpdate(BaseModel):
    status: Literal["active", "maintenance", "offline"]


class UserInfoIn(BaseModel):
    name: NonEmptyStr
    walletAddress: NonEmptyStr
    email: Optional[str] = None

    @field_validator("walletAddress")
    @classmethod
    def check_wallet(cls, value):
        if not WALLET_RE.match(value):
            raise ValueError("Invalid wallet address")
        return value.lower()


class TokenCheck(BaseModel):
    # a missing token is an auth failure, not a malformed body
    token: Optional[str] = None
    ip: Optional[str] = None


class ExportRequest(BaseModel):
    networks: list[str] = Field(default_factory=list)
    timeRange: Optional[str] = None
    dataTypes: Optional[list[Literal["metrics", "sessions", "usage", "speed"]]] = None
    format: Literal["json", "csv"] = "json"


MISSING_TYPES = {"missing", "string_too_short"}


def parse_body(schema, body):
    """Validate ``body`` against ``schema``; report only the first violation."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return schema.model_validate(body)
    except SchemaError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        if first["type"] in MISSING_TYPES:
            raise ValidationError(f"Missing required field: {field}") from None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(f"Invalid field {field}: {message}") from None
