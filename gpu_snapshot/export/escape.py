"""Minimal JSON string body encoding for untrusted text such as command lines."""

from __future__ import annotations

_SHORT_ESCAPES = {
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def escape_json_string(text: str, *, escape_control: bool = False) -> str:
    """Return ``text`` as the inner body of a JSON string literal.

    Only ``"`` and ``\\`` are escaped by default; every other code point,
    control characters included, is passed through unchanged. With
    ``escape_control`` set, code points below U+0020 are escaped as RFC 8259
    requires. The surrounding quotes are left to the caller.
    """

    out: list[str] = []
    for char in text:
        if char == '"' or char == "\\":
            out.append("\\" + char)
        elif escape_control and char < " ":
            out.append(_SHORT_ESCAPES.get(char) or f"\\u{ord(char):04x}")
        else:
            out.append(char)
    return "".join(out)
