"""
Reversible transforms for article bodies.

Bodies of encrypted articles are stored encoded and decoded on read. The
repository only relies on the ``BodyCodec`` protocol, so a real cipher can
replace ``Base64Codec`` without touching callers.
"""

import base64
from typing import Protocol

from ..errors import PersistenceError


class BodyCodec(Protocol):
    def encode(self, text: str) -> str: ...

    def decode(self, stored: str) -> str:
        """
        Raises:
            PersistenceError: If ``stored`` was not produced by ``encode``
        """
        ...


class Base64Codec:
    """UTF-8 text to Base64 and back. Not encryption."""

    def encode(self, text: str) -> str:
        return base64.b64encode(text.encode("utf-8")).decode("ascii")

    def decode(self, stored: str) -> str:
        if not stored:
            return ""
        # binascii.Error, UnicodeDecodeError and non-ASCII input are all ValueErrors
        try:
            return base64.b64decode(stored, validate=True).decode("utf-8")
        except ValueError as e:
            raise PersistenceError("decoding article body", e) from e
