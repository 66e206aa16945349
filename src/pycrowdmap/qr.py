"""QR payload normalization.

A scanned code is either a bare location id (``street-fest``) or a JSON
object carrying the id and an optional action
(``{"eventId": "street-fest", "action": "entry"}``). The shape is decided
up front from the text itself; anything that fits neither shape fails
closed with :class:`MalformedInputError`.
"""

from __future__ import annotations

import json
import re
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pycrowdmap.catalog import LocationCatalog
from pycrowdmap.exceptions import MalformedInputError
from pycrowdmap.models.location import Location

_BARE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_ID_KEYS = ("eventId", "event_id", "id")


class QrAction(StrEnum):
    ENTRY = "entry"
    EXIT = "exit"


class BareQrPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bare"] = "bare"
    location_id: str


class StructuredQrPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["structured"] = "structured"
    location_id: str
    action: QrAction | None = None


QrPayload = Annotated[BareQrPayload | StructuredQrPayload, Field(discriminator="kind")]


class QrScanResult(BaseModel):
    """User-facing outcome of a QR scan."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    location_id: str | None = None
    count: int | None = None


def _structured(text: str) -> StructuredQrPayload:
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInputError("Could not parse QR code data.") from exc
    if not isinstance(data, dict):
        raise MalformedInputError("Could not parse QR code data.")

    location_id: str | None = None
    for key in _ID_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            location_id = value.strip()
            break
    if location_id is None:
        raise MalformedInputError("Invalid QR Code: Event ID missing.")

    raw_action = data.get("action")
    action: QrAction | None = None
    if raw_action is not None:
        try:
            action = QrAction(str(raw_action).strip().lower())
        except ValueError as exc:
            raise MalformedInputError("Invalid action in QR code.") from exc

    return StructuredQrPayload(location_id=location_id, action=action)


def parse_qr_payload(data: str | bytes) -> QrPayload:
    """Classify and parse raw scanner output.

    Raises
    ------
    MalformedInputError
        Empty input, invalid JSON, a JSON value that is not an object,
        a missing id, an unknown action, or a bare string that is not a
        plausible id.
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedInputError("Could not parse QR code data.") from exc

    text = data.strip()
    if not text:
        raise MalformedInputError("Invalid QR Code: Event ID missing.")
    if text.startswith("{"):
        return _structured(text)
    if _BARE_ID_RE.match(text):
        return BareQrPayload(location_id=text)
    raise MalformedInputError("Could not parse QR code data.")


def resolve_qr_location(
    data: str | bytes,
    catalog: LocationCatalog,
) -> tuple[QrPayload, Location]:
    """Parse *data* and look its id up in *catalog*.

    Raises :class:`MalformedInputError` or
    :class:`~pycrowdmap.exceptions.UnknownLocationError`.
    """
    payload = parse_qr_payload(data)
    return payload, catalog.require(payload.location_id)
