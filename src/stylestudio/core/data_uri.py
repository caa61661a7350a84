"""Helpers for ``data:<mimeType>;base64,<payload>`` image strings.

Images travel through Style Studio as opaque data URIs.  Nothing here decodes
pixels; the helpers only split a URI into its mime type and payload so the
payload can be handed to the model SDK, and join them back together for
model output.
"""

from __future__ import annotations

import base64
import binascii

from stylestudio.core.errors import ValidationError

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/heif": "heif",
}


def parse_data_uri(uri: str) -> tuple[str, str]:
    """Split a data URI into ``(mime_type, base64_payload)``.

    The header is split on the fixed delimiters: ``,`` separates header from
    payload, ``:`` and ``;`` bracket the mime type.

    Args:
        uri: A string of the form ``data:image/png;base64,iVBORw0...``.

    Returns:
        The mime type and the (still encoded) base64 payload.

    Raises:
        ValidationError: If the string is not a base64 data URI.
    """
    if not isinstance(uri, str) or "," not in uri:
        raise ValidationError("Invalid image data: expected a base64 data URI")

    header, payload = uri.split(",", 1)
    if not header.startswith("data:") or ";" not in header:
        raise ValidationError("Invalid image data: expected a base64 data URI")

    mime_type, _, encoding = header[len("data:") :].partition(";")
    if not mime_type or encoding != "base64" or not payload:
        raise ValidationError("Invalid image data: expected a base64 data URI")

    return mime_type, payload


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Return ``(mime_type, raw_bytes)`` for a data URI.

    Raises:
        ValidationError: If the URI is malformed or the payload is not base64.
    """
    mime_type, payload = parse_data_uri(uri)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Invalid image data: payload is not valid base64") from e
    return mime_type, data


def build_data_uri(mime_type: str, data: bytes | str) -> str:
    """Build a data URI from raw bytes or an already base64-encoded string."""
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{data}"


def extension_for(mime_type: str) -> str:
    """Return a file extension for an image mime type (``png`` if unknown)."""
    return _EXTENSIONS.get(mime_type.lower(), "png")
