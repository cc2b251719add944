"""
Key encoding for docref.

Value keys and reference names are stored in one collection, so every id is
prefixed with its namespace. Raw strings longer than ``max_key_length`` are
replaced by their SHA-256 hex digest; shorter ones are kept as-is so they stay
readable when inspecting the collection.
"""

import hashlib
import re

from .exceptions import ConfigurationError

VALUE_PREFIX = "v:"
REFERENCE_PREFIX = "r:"
MAX_KEY_LENGTH = 200


class KeyCodec:
    """Maps raw cache keys and reference names to document ids."""

    def __init__(self, value_prefix: str = VALUE_PREFIX,
                 reference_prefix: str = REFERENCE_PREFIX,
                 max_key_length: int = MAX_KEY_LENGTH):
        if not value_prefix or not reference_prefix:
            raise ConfigurationError("Key prefixes must be non-empty strings")
        if value_prefix.startswith(reference_prefix) or reference_prefix.startswith(value_prefix):
            raise ConfigurationError(
                f"Value prefix {value_prefix!r} and reference prefix {reference_prefix!r} overlap"
            )
        if max_key_length <= 0:
            raise ConfigurationError("max_key_length must be positive")
        self.value_prefix = value_prefix
        self.reference_prefix = reference_prefix
        self.max_key_length = max_key_length

    def hash_key(self, raw: str) -> str:
        """Return raw unchanged if it is short enough, otherwise its sha256 hex digest."""
        if len(raw) <= self.max_key_length:
            return raw
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def encode(self, raw: str, prefix: str) -> str:
        return prefix + self.hash_key(raw)

    def value_id(self, key: str) -> str:
        return self.encode(key, self.value_prefix)

    def reference_id(self, reference: str) -> str:
        return self.encode(reference, self.reference_prefix)

    def wildcard_pattern(self, pattern: str, anchor_end: bool = False) -> str:
        """
        Build a regular expression matching reference ids for a wildcard pattern.

        Every regex metacharacter is escaped except ``*``, which matches any
        run of characters. The expression is anchored at the start of the id;
        with ``anchor_end`` it must also consume the whole id.

        Note that references longer than ``max_key_length`` are stored hashed
        and can only be matched by a pattern that covers the whole digest.
        """
        body = ".*".join(re.escape(part) for part in pattern.split("*"))
        regex = "^" + re.escape(self.reference_prefix) + body
        if anchor_end:
            regex += "$"
        return regex

    def namespace_pattern(self) -> str:
        """Regex matching every id in either namespace."""
        return "^(%s|%s)" % (re.escape(self.value_prefix), re.escape(self.reference_prefix))
