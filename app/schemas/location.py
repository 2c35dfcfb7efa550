# app/schemas/location.py
import re
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from app.errors import PayloadValidationError

_HTTP_URL = TypeAdapter(AnyHttpUrl)
# plain decimal with optional exponent, no digit separators
_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


class LocationReport(BaseModel):
    """
    Location payload posted by a device.

    Wire names are the ones devices send (to, deviceId, lat, lon, mapUrl);
    the long field names are accepted too. Unknown keys are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    recipient: EmailStr = Field(..., validation_alias=AliasChoices("to", "recipient"))
    device_id: StrictStr = Field(
        ..., min_length=8, max_length=128, validation_alias=AliasChoices("deviceId", "device_id")
    )
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False, validation_alias=AliasChoices("lat", "latitude"))
    longitude: float = Field(
        ..., ge=-180.0, le=180.0, allow_inf_nan=False, validation_alias=AliasChoices("lon", "longitude")
    )
    map_url: Optional[StrictStr] = Field(default=None, validation_alias=AliasChoices("mapUrl", "map_url"))

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_number(cls, v: Any) -> Any:
        # JSON numbers and numeric strings only; bool is an int subclass
        if isinstance(v, bool):
            raise ValueError("must be a number")
        if isinstance(v, str):
            s = v.strip()
            if not _NUMBER_RE.fullmatch(s):
                raise ValueError("must be a number")
            return float(s)
        return v

    @field_validator("map_url")
    @classmethod
    def _check_map_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            _HTTP_URL.validate_python(v)
        except ValidationError:
            raise ValueError("must be an absolute http(s) URL") from None
        # keep the caller's string, not pydantic's normalised form
        return v


def validate_location(raw: Any) -> LocationReport:
    if not isinstance(raw, dict):
        raise PayloadValidationError(["body: must be a JSON object"])
    try:
        return LocationReport.model_validate(raw)
    except ValidationError as e:
        issues = [f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()]
        raise PayloadValidationError(issues) from None
