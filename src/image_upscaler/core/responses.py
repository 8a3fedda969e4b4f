"""Classification of the upscaling provider's heterogeneous responses.

The provider may answer with a bare URL, an object carrying a URL under one
of several keys, a list of URLs, a prediction envelope with a status and an
``output`` of any of those shapes, raw bytes, or something unusable. Each
shape gets its own variant so callers can branch on type instead of
probing dictionaries.
"""

import base64
import binascii
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

# Object keys that carry the result URL, tried in order.
URL_FIELD_NAMES: Tuple[str, ...] = ("url", "stringValue", "output_url", "image")

SUCCEEDED = "succeeded"
PROCESSING = "processing"
STARTING = "starting"
FAILED = "failed"
CANCELED = "canceled"

PENDING_STATUSES = frozenset({STARTING, PROCESSING})
USABLE_STATUSES = frozenset({SUCCEEDED, PROCESSING})


@dataclass(frozen=True)
class StringUrl:
    url: str


@dataclass(frozen=True)
class ObjectField:
    name: str
    url: str


@dataclass(frozen=True)
class ArrayFirst:
    url: str


@dataclass(frozen=True)
class EmbeddedBytes:
    data: bytes


@dataclass(frozen=True)
class StatusWrapped:
    status: str
    output: Optional["ProviderResponse"] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    raw: Any


ProviderResponse = Union[
    StringUrl, ObjectField, ArrayFirst, EmbeddedBytes, StatusWrapped, Unrecognized
]


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def classify_response(raw: Any) -> ProviderResponse:
    """Map a raw provider response onto one of the response variants."""
    if isinstance(raw, (bytes, bytearray)):
        return EmbeddedBytes(bytes(raw)) if raw else Unrecognized(raw)

    if _non_empty_str(raw):
        return StringUrl(raw.strip())

    if isinstance(raw, Mapping):
        for name in URL_FIELD_NAMES:
            if _non_empty_str(raw.get(name)):
                return ObjectField(name, raw[name].strip())
        status = raw.get("status")
        if isinstance(status, str):
            output = raw.get("output")
            error = raw.get("error")
            return StatusWrapped(
                status=status.lower(),
                output=classify_response(output) if output else None,
                error=str(error) if error else None,
            )
        return Unrecognized(raw)

    if (
        isinstance(raw, Sequence)
        and not isinstance(raw, str)
        and raw
        and _non_empty_str(raw[0])
    ):
        return ArrayFirst(raw[0].strip())

    return Unrecognized(raw)


def resolve_output(response: ProviderResponse) -> Union[str, bytes, None]:
    """
    Resolve a classified response to a result URL or embedded bytes.

    Status envelopes resolve through their ``output`` only while the
    prediction succeeded or is still processing; everything else yields None.
    """
    if isinstance(response, (StringUrl, ObjectField, ArrayFirst)):
        return response.url
    if isinstance(response, EmbeddedBytes):
        return response.data
    if isinstance(response, StatusWrapped):
        if response.status in USABLE_STATUSES and response.output is not None:
            return resolve_output(response.output)
        return None
    return None


def decode_data_url(url: str) -> Optional[bytes]:
    """Decode a base64 ``data:`` URL, or return None if ``url`` is not one."""
    if not url.startswith("data:"):
        return None
    header, _, payload = url.partition(",")
    if ";base64" not in header:
        return None
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None


def describe_raw(raw: Any, limit: int = 300) -> str:
    """Render a raw response compactly for error messages."""
    if isinstance(raw, (bytes, bytearray)):
        text = f"<{len(raw)} bytes>"
    else:
        try:
            text = json.dumps(raw, default=str)
        except (TypeError, ValueError):
            text = repr(raw)
    return text if len(text) <= limit else text[:limit] + "..."
