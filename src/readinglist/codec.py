"""Property list codec: bytes <-> nested dict/list/scalar tree.

Stateless and unaware of reading list semantics. plistlib auto-detects
XML and binary input; output defaults to XML 1.0, which Safari and every
other property list consumer can read back.
"""

from __future__ import annotations

import plistlib
import struct
from datetime import datetime
from typing import Any
from xml.parsers.expat import ExpatError

from readinglist.errors import EncodingError, MalformedDocument

# plistlib writes recursively, a couple of frames per level; stay well
# inside the default recursion limit so anything decode accepts re-encodes.
MAX_DEPTH = 200

FORMATS = {
    "xml": plistlib.FMT_XML,
    "binary": plistlib.FMT_BINARY,
}

_BINARY_MAGIC = b"bplist00"
_INT_MIN = -(1 << 63)
_INT_MAX = (1 << 64) - 1
_SCALARS = (str, bytes, bytearray, float, datetime)

# Errors plistlib lets escape on truncated or corrupt input.
_DECODE_ERRORS = (
    plistlib.InvalidFileException,
    ExpatError,
    ValueError,
    TypeError,
    IndexError,
    KeyError,
    OverflowError,
    struct.error,
)


def detect_format(data: bytes) -> str:
    return "binary" if data[:8] == _BINARY_MAGIC else "xml"


def decode(data: bytes) -> dict[str, Any]:
    """Parse a property list. Raises MalformedDocument."""
    try:
        tree = plistlib.loads(data)
    except RecursionError as exc:
        raise MalformedDocument("property list nests too deeply") from exc
    except _DECODE_ERRORS as exc:
        raise MalformedDocument(f"not a property list: {exc}") from exc

    if not isinstance(tree, dict):
        msg = f"root must be a dictionary, got {type(tree).__name__}"
        raise MalformedDocument(msg)
    if _too_deep(tree):
        msg = f"property list nests deeper than {MAX_DEPTH} levels"
        raise MalformedDocument(msg)
    return tree


def encode(tree: dict[str, Any], fmt: str = "xml") -> bytes:
    """Serialize a tree produced by decode(). Raises EncodingError."""
    if fmt not in FORMATS:
        msg = f"unknown property list format: {fmt!r}"
        raise EncodingError(msg)
    if not isinstance(tree, dict):
        msg = f"root must be a dictionary, got {type(tree).__name__}"
        raise EncodingError(msg)
    if _too_deep(tree):
        msg = f"property list nests deeper than {MAX_DEPTH} levels"
        raise EncodingError(msg)
    _validate(tree, binary=fmt == "binary")
    try:
        return plistlib.dumps(tree, fmt=FORMATS[fmt], sort_keys=True)
    except RecursionError as exc:
        raise EncodingError("property list nests too deeply") from exc
    except (TypeError, ValueError, OverflowError) as exc:
        raise EncodingError(str(exc)) from exc


def _too_deep(tree: Any) -> bool:
    """True when a container sits more than MAX_DEPTH levels down (root is 1)."""
    stack: list[tuple[Any, int]] = [(tree, 1)]
    while stack:
        value, depth = stack.pop()
        if depth > MAX_DEPTH:
            return True
        if isinstance(value, dict):
            stack.extend((v, depth + 1) for v in value.values())
        elif isinstance(value, list):
            stack.extend((v, depth + 1) for v in value)
    return False


def _validate(tree: dict[str, Any], *, binary: bool) -> None:
    """Walk the tree and reject anything plistlib cannot write."""
    stack: list[tuple[Any, str]] = [(tree, "$")]
    while stack:
        value, path = stack.pop()
        if isinstance(value, dict):
            for k, v in value.items():
                if not isinstance(k, str):
                    msg = f"{path}: dictionary key {k!r} is not a string"
                    raise EncodingError(msg)
                stack.append((v, f"{path}.{k}"))
        elif isinstance(value, (list, tuple)):
            stack.extend((v, f"{path}[{i}]") for i, v in enumerate(value))
        elif isinstance(value, bool):
            continue
        elif isinstance(value, int):
            if not _INT_MIN <= value <= _INT_MAX:
                msg = f"{path}: integer {value} out of 64-bit range"
                raise EncodingError(msg)
        elif isinstance(value, _SCALARS):
            continue
        elif isinstance(value, plistlib.UID):
            if not binary:
                msg = f"{path}: UID values only exist in binary property lists"
                raise EncodingError(msg)
        else:
            msg = f"{path}: cannot encode {type(value).__name__}"
            raise EncodingError(msg)
