"""Reading pod metadata exposed through the Kubernetes downward API."""

from __future__ import annotations

import os
import re

_ESCAPES = {
    "a": b"\a",
    "b": b"\b",
    "f": b"\f",
    "n": b"\n",
    "r": b"\r",
    "t": b"\t",
    "v": b"\v",
    "\\": b"\\",
    "'": b"'",
    '"': b'"',
}

_PIECE = re.compile(
    r"\\(?:x[0-9a-fA-F]{2}|[0-7]{3}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[abfnrtv\\'\"])|[^\\]",
    re.S,
)


def read_pod_labels(path: str | os.PathLike) -> dict[str, str]:
    """Read the pod labels file at ``path``."""
    with open(path, encoding="utf-8", errors="surrogateescape") as fh:
        return parse_downward_api(fh.read())


def read_pod_annotations(path: str | os.PathLike) -> dict[str, str]:
    """Read the pod annotations file at ``path``."""
    with open(path, encoding="utf-8", errors="surrogateescape") as fh:
        return parse_downward_api(fh.read())


def parse_downward_api(text: str) -> dict[str, str]:
    """Parse lines of the form ``key="quoted value"`` into a dict.

    Lines without '=' are skipped; a value that is not a valid quoted
    string raises ValueError.
    """
    result: dict[str, str] = {}
    for line in text.split("\n"):
        key, sep, raw = line.partition("=")
        if not sep:
            continue
        try:
            result[key] = _unquote(raw)
        except ValueError as err:
            raise ValueError(f"failed to unquote {raw}: {err}") from err
    return result


def _unquote(text: str) -> str:
    if len(text) < 2 or text[0] != text[-1]:
        raise ValueError("invalid syntax")
    quote, body = text[0], text[1:-1]
    if quote == "`":
        if "`" in body:
            raise ValueError("invalid syntax")
        return body.replace("\r", "")
    if quote not in "\"'" or "\n" in body:
        raise ValueError("invalid syntax")

    out = bytearray()
    pos = 0
    count = 0
    for match in _PIECE.finditer(body):
        if match.start() != pos:
            raise ValueError("invalid syntax")
        piece = match.group()
        pos = match.end()
        count += 1
        if len(piece) == 1:
            if piece == quote:
                raise ValueError("invalid syntax")
            out += piece.encode("utf-8", "surrogateescape")
            continue
        kind = piece[1]
        if kind == "x":
            out.append(int(piece[2:], 16))
        elif kind in "01234567":
            value = int(piece[1:], 8)
            if value > 0xFF:
                raise ValueError("invalid syntax")
            out.append(value)
        elif kind in "uU":
            code = int(piece[2:], 16)
            if code > 0x10FFFF or 0xD800 <= code < 0xE000:
                raise ValueError("invalid syntax")
            out += chr(code).encode("utf-8")
        else:
            if kind in "'\"" and kind != quote:
                raise ValueError("invalid syntax")
            out += _ESCAPES[kind]
    if pos != len(body):
        raise ValueError("invalid syntax")
    if quote == "'" and count != 1:
        raise ValueError("invalid syntax")
    return out.decode("utf-8", "surrogateescape")