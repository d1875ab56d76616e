"""Tagged file content: text travels as utf8, anything else as base64."""

import base64
import binascii
import enum
import hashlib

from app.errors import InvalidRequest


class ContentEncoding(str, enum.Enum):
    UTF8 = "utf8"
    BASE64 = "base64"


def decode_content(content: str, encoding: ContentEncoding) -> bytes:
    """Wire string to raw bytes. Raises InvalidRequest for malformed base64 or unencodable text."""
    if ContentEncoding(encoding) is ContentEncoding.BASE64:
        try:
            return base64.b64decode(content.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise InvalidRequest(f"Invalid base64 content: {e}")
    try:
        return content.encode("utf-8")
    except UnicodeEncodeError as e:
        raise InvalidRequest(f"Invalid utf8 content: {e.reason}")


def encode_content(raw: bytes, encoding: ContentEncoding) -> str:
    """Raw bytes back to the wire string using the tag stored at write time."""
    if ContentEncoding(encoding) is ContentEncoding.BASE64:
        return base64.b64encode(raw).decode("ascii")
    return raw.decode("utf-8")


def compute_hash(body: bytes) -> str:
    """SHA-256 hex digest of file body."""
    return hashlib.sha256(body).hexdigest()
