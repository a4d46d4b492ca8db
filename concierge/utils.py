import os
from typing import Any, TypeVar

# python insantiates generics separate to function definition
T = TypeVar("T")


def chunk(ls: list[T], size: int) -> list[list[T]]:
    """Split a list into contiguous slices of at most `size` items, preserving order"""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [ls[i : i + size] for i in range(0, len(ls), size)]


def unique(ls: list[T]) -> list[T]:
    """Remove duplicates from a list, keeping the first occurrence of each item"""
    return list(dict.fromkeys(ls))


def pad_token_id(token_id: Any) -> str:
    """
    The proof service indexes single digit token ids with a leading zero,
    so `7` is stored as `07`. Longer ids are left untouched.
    """
    token_id = str(token_id).strip()
    return token_id.rjust(2, "0")


def to_hex(value: str) -> str:
    """Lower case, `0x` prefixed hex. The proof service omits the prefix on leaves"""
    value = value.strip().lower()
    return value if value.startswith("0x") else f"0x{value}"


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(to_hex(value)[2:])


def append_line(path: str, line: str) -> None:
    """
    Append a single line and force it to disk before returning,
    the file is the durable record if the process dies right after.
    """
    with open(path, "a") as f:
        f.write(line + "\n")
        f.flush()
        os.fsync(f.fileno())
