"""Encoding of DupSort key-values into unique keys and back."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from .snapshot import KV
from .utils import display_ascii

LMDB_MAX_KEY_SIZE = 511
DUPSORT_HACK_MAX_KEY_SIZE = 255
_SEPARATOR = b"\x00\x00\x00\x00"


class DupSortHackError(ValueError):
    """Raised when an entry cannot be encoded or decoded."""


def encode_one(entry: KV) -> KV:
    """Encode a DupSort entry so that its key becomes unique.

    The key becomes: original key, four zero bytes, as much of the value as
    fits in the maximum LMDB key size, and a byte with the original key length.
    """
    key = entry.key
    if not key:
        raise DupSortHackError("empty key not supported by dupsort_hack")
    if len(key) > DUPSORT_HACK_MAX_KEY_SIZE:
        raise DupSortHackError(
            f"key size exceeds dupsort_hack max size of "
            f"{DUPSORT_HACK_MAX_KEY_SIZE}: key {display_ascii(key)}"
        )
    remaining = LMDB_MAX_KEY_SIZE - len(key) - len(_SEPARATOR) - 1
    new_key = key + _SEPARATOR + entry.value[:remaining] + bytes([len(key)])
    return replace(entry, key=new_key)


def decode_one(entry: KV) -> KV:
    """Reverse encode_one."""
    key = entry.key
    if len(key) < 6:
        raise DupSortHackError(
            f"not a valid dupsort_hack dump (key): {display_ascii(key)}"
        )
    key_len = key[-1]
    if len(key) < key_len + 5:
        raise DupSortHackError(
            f"not a valid dupsort_hack dump (key len): {display_ascii(key)}"
        )
    if key[key_len:key_len + 4] != _SEPARATOR:
        raise DupSortHackError(
            f"not a valid dupsort_hack dump (no separator): {display_ascii(key)}"
        )
    return replace(entry, key=key[:key_len])


def encode(entries: Iterable[KV]) -> list[KV]:
    """Encode sorted entries, checking that keys stay unique and ordered."""
    result: list[KV] = []
    prev_key = b""
    for entry in entries:
        encoded = encode_one(entry)
        if encoded.key == prev_key:
            raise DupSortHackError(
                f"dupsort_hack does not result in unique keys for key "
                f"{display_ascii(entry.key)}"
            )
        if prev_key > encoded.key:
            raise DupSortHackError(
                f"dupsort_hack results in reverse sort order for key "
                f"{display_ascii(entry.key)}"
            )
        prev_key = encoded.key
        result.append(encoded)
    return result


def decode(entries: Iterable[KV]) -> list[KV]:
    """Decode entries produced by encode."""
    return [decode_one(entry) for entry in entries]