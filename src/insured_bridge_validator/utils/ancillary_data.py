"""
Ancillary data codec for optimistic oracle price requests.

Ancillary data is UTF-8 text of comma separated ``key:value`` pairs, e.g.
``relayHash:8b1d...``. Values may be bare tokens, double quoted strings, or
nested ``{...}`` objects and ``[...]`` arrays. Bare values are kept as
strings so hex hashes never get coerced into numbers.
"""

import binascii
import re
from collections.abc import Mapping
from typing import Any, Union

from hexbytes import HexBytes
from web3 import Web3

from ..exceptions import DecodeError

RELAY_HASH_KEY = "relayHash"

_SPECIAL_CHARS = frozenset(',:{}[]"')
_HEX_32_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
    """
    Convert ancillary data to raw bytes.

    Args:
        value: Raw bytes, HexBytes, or a hex string (with or without 0x)

    Returns:
        Bytes representation

    Raises:
        DecodeError: If a string value is not valid hex
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise DecodeError(f"Unsupported ancillary data type: {type(value).__name__}")
    try:
        return Web3.to_bytes(hexstr=value)
    except (ValueError, binascii.Error) as e:
        raise DecodeError(f"Ancillary data is not valid hex: {e}") from e


class _Parser:
    """Recursive descent parser over a decoded ancillary data string."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def parse(self) -> dict[str, Any]:
        result = self._parse_pairs(closing=None)
        if self.pos != len(self.text):
            raise DecodeError(f"Unexpected character {self.text[self.pos]!r} at position {self.pos}")
        return result

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _skip_whitespace(self) -> None:
        while not self._at_end() and self.text[self.pos].isspace():
            self.pos += 1

    def _parse_pairs(self, closing: str | None) -> dict[str, Any]:
        result: dict[str, Any] = {}
        self._skip_whitespace()
        if closing and not self._at_end() and self.text[self.pos] == closing:
            self.pos += 1
            return result

        while True:
            key = self._parse_key()
            if key in result:
                raise DecodeError(f"Duplicate key {key!r} in ancillary data")
            result[key] = self._parse_value(closing)

            if self._at_end():
                if closing:
                    raise DecodeError(f"Missing closing {closing!r}")
                return result

            char = self.text[self.pos]
            if char == ",":
                self.pos += 1
            elif closing and char == closing:
                self.pos += 1
                return result
            else:
                raise DecodeError(f"Unexpected character {char!r} at position {self.pos}")

    def _parse_key(self) -> str:
        start = self.pos
        while not self._at_end():
            char = self.text[self.pos]
            if char == ":":
                key = self.text[start:self.pos].strip()
                if not key:
                    raise DecodeError(f"Empty key at position {start}")
                self.pos += 1
                return key
            if char in _SPECIAL_CHARS:
                break
            self.pos += 1
        raise DecodeError(f"Expected 'key:value' pair at position {start}")

    def _parse_value(self, closing: str | None) -> Any:
        self._skip_whitespace()
        if self._at_end():
            return ""

        match self.text[self.pos]:
            case "{":
                self.pos += 1
                value: Any = self._parse_pairs(closing="}")
            case "[":
                self.pos += 1
                value = self._parse_array()
            case '"':
                value = self._parse_string()
            case _:
                return self._parse_bare(closing)

        self._skip_whitespace()
        return value

    def _parse_array(self) -> list[Any]:
        items: list[Any] = []
        self._skip_whitespace()
        if not self._at_end() and self.text[self.pos] == "]":
            self.pos += 1
            return items

        while True:
            items.append(self._parse_value("]"))
            if self._at_end():
                raise DecodeError("Missing closing ']'")
            char = self.text[self.pos]
            self.pos += 1
            if char == "]":
                return items
            if char != ",":
                raise DecodeError(f"Unexpected character {char!r} at position {self.pos - 1}")

    def _parse_string(self) -> str:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while not self._at_end():
            char = self.text[self.pos]
            if char == "\\" and self.pos + 1 < len(self.text):
                chars.append(self.text[self.pos + 1])
                self.pos += 2
                continue
            self.pos += 1
            if char == '"':
                return "".join(chars)
            chars.append(char)
        raise DecodeError(f"Unterminated string starting at position {start}")

    def _parse_bare(self, closing: str | None) -> str:
        start = self.pos
        stops = {","} | ({closing} if closing else set())
        while not self._at_end() and self.text[self.pos] not in stops:
            if self.text[self.pos] in '{}[]"':
                raise DecodeError(
                    f"Unexpected character {self.text[self.pos]!r} at position {self.pos}"
                )
            self.pos += 1
        return self.text[start:self.pos].strip()


def decode_ancillary_data(ancillary_data: Union[HexBytes, bytes, str]) -> dict[str, Any]:
    """
    Parse ancillary data into a key/value mapping.

    Args:
        ancillary_data: Raw bytes or hex string of the ancillary data

    Returns:
        Parsed mapping; nested objects become dicts and arrays become lists

    Raises:
        DecodeError: If the data is not hex, not UTF-8, or not well formed
    """
    raw = to_bytes_safe(ancillary_data)
    if not raw:
        raise DecodeError("Ancillary data is empty")

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Ancillary data is not valid UTF-8: {e}") from e

    return _Parser(text).parse()


def decode_relay_hash(ancillary_data: Union[HexBytes, bytes, str]) -> str:
    """
    Extract the relay hash from relay ancillary data.

    Bridge pools write the hash without a 0x prefix. A value that already
    carries one keeps it, so the result starts with "0x0x" and matches no
    relay.

    Returns:
        The relay hash as lowercase hex with a 0x prefix

    Raises:
        DecodeError: If the data is malformed or has no valid relayHash
    """
    parsed = decode_ancillary_data(ancillary_data)

    relay_hash = parsed.get(RELAY_HASH_KEY)
    if relay_hash is None:
        raise DecodeError(f"Ancillary data has no {RELAY_HASH_KEY} key")
    if not isinstance(relay_hash, str):
        raise DecodeError(f"{RELAY_HASH_KEY} must be a hex string, got {type(relay_hash).__name__}")

    digits = relay_hash[2:] if relay_hash.startswith(("0x", "0X")) else relay_hash
    if not _HEX_32_RE.match(digits):
        raise DecodeError(f"{RELAY_HASH_KEY} must be 32 bytes of hex, got {relay_hash!r}")

    return "0x" + relay_hash.lower()


def _encode_value(value: Any) -> str:
    if isinstance(value, Mapping):
        return "{" + _encode_pairs(value) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode_value(item) for item in value) + "]"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()

    text = str(value)
    if any(char in _SPECIAL_CHARS for char in text) or text != text.strip():
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _encode_pairs(data: Mapping[str, Any]) -> str:
    pairs = []
    for key, value in data.items():
        if not key or any(char in _SPECIAL_CHARS for char in key):
            raise ValueError(f"Invalid ancillary data key: {key!r}")
        pairs.append(f"{key}:{_encode_value(value)}")
    return ",".join(pairs)


def encode_ancillary_data(data: Mapping[str, Any]) -> bytes:
    """
    Encode a mapping as ancillary data bytes.

    Bytes values are written as hex without a 0x prefix, matching how the
    bridge contracts append bytes32 values.
    """
    if not data:
        raise ValueError("Cannot encode empty ancillary data")
    return _encode_pairs(data).encode("utf-8")


def relay_ancillary_data(relay_hash: Union[HexBytes, bytes, str]) -> bytes:
    """
    Build the ancillary data a bridge pool attaches to a relay price request.

    Args:
        relay_hash: 32 byte relay hash as bytes or hex string

    Returns:
        ``relayHash:<64 lowercase hex chars>`` as bytes
    """
    raw = to_bytes_safe(relay_hash)
    if len(raw) != 32:
        raise ValueError(f"Relay hash must be 32 bytes, got {len(raw)}")
    return encode_ancillary_data({RELAY_HASH_KEY: raw})
