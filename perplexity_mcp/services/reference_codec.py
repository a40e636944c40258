"""
Stateless references: a search result id is the query itself, base64url-encoded.

fetch() decodes the reference back into the query, so no id -> query index is kept
anywhere. References are an encoding, not a credential: anyone can build one.
"""

import base64
import binascii
import re

from perplexity_mcp.core.errors import DecodeError

_ALPHABET = re.compile(r"^[A-Za-z0-9_-]*$")


def encode_reference(query: str) -> str:
    """Encode a query as unpadded URL-safe base64 of its UTF-8 bytes."""
    raw = base64.urlsafe_b64encode(query.encode("utf-8"))
    return raw.decode("ascii").rstrip("=")


def decode_reference(reference: str) -> str:
    """
    Decode a reference produced by encode_reference.
    Padding is optional. Raises DecodeError for anything encode_reference could not have produced.
    """
    token = (reference or "").rstrip("=")
    if not token:
        raise DecodeError("Malformed reference: empty")
    if not _ALPHABET.match(token) or len(token) % 4 == 1:
        raise DecodeError(f"Malformed reference: {reference!r}")
    padded = token + "=" * (-len(token) % 4)
    try:
        query = base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise DecodeError(f"Malformed reference: {reference!r}") from e
    # unused trailing bits must be zero, otherwise several tokens map to one query
    if encode_reference(query) != token:
        raise DecodeError(f"Malformed reference (non-canonical): {reference!r}")
    return query
