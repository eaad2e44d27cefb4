"""Validation and canonicalization of incoming visitor payloads.

The tracker sends loosely typed JSON. Everything downstream relies on the
canonical form produced here: every sub-record present, numbers clamped to
their documented ranges, enum values normalized. The schema itself lives in
``models.payload``.
"""

from typing import Any, Union

import pydantic

from errors import PayloadTooLarge, ValidationError
from models.payload import VisitorPayload
from models.visitor import VisitorEvent

DEFAULT_MAX_PAYLOAD_BYTES = 10 * 1024 * 1024


def _to_validation_error(e: pydantic.ValidationError) -> ValidationError:
    """Report the first schema error as a single human-readable message."""
    error = e.errors()[0]
    if error["type"] == "json_invalid":
        return ValidationError(f"Request body is not valid JSON: {error['msg']}")
    location = ".".join(str(part) for part in error["loc"])
    if not location:
        return ValidationError("Payload must be a JSON object")
    return ValidationError(f"'{location}': {error['msg']}")


def parse_payload(body: Union[bytes, str], max_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES) -> VisitorEvent:
    """Decode and validate a raw request body.

    Size is checked before decoding so oversized bodies never reach the parser.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    if len(body) > max_bytes:
        raise PayloadTooLarge(f"Payload exceeds {max_bytes} bytes")
    if not body.strip():
        raise ValidationError("Request body is empty")
    try:
        return VisitorPayload.model_validate_json(body).to_event()
    except pydantic.ValidationError as e:
        raise _to_validation_error(e)


def validate(payload: Any) -> VisitorEvent:
    """Validate an already decoded payload and return a canonical VisitorEvent.

    The returned event still carries a provisional timestamp and no ip;
    the ingest endpoint assigns both from server-side observations.

    Raises:
        ValidationError: if ``id`` is missing/blank or a field has the wrong type.
    """
    try:
        return VisitorPayload.model_validate(payload).to_event()
    except pydantic.ValidationError as e:
        raise _to_validation_error(e)
