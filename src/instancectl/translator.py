"""
Turns a declared InstanceSpec into the create-instance request body.

Disk and IP pool lists arrive as quoted string literals (the form a
declarative host renders list elements in), so each entry is unquoted
before use. One bad entry rejects the whole spec.
"""

import re

from .errors import ValidationError
from .logger import logger
from .schemas.api import (
    ExternalIpCreate,
    InstanceCreate,
    InstanceDiskAttachment,
    NetworkInterfaceAttachment,
)
from .schemas.instance import InstanceSpec


# One escape sequence inside a quoted literal
_ESCAPE = re.compile(
    r"\\(?:x[0-9a-fA-F]{2}|[0-7]{3}|u[0-9a-fA-F]{4}|U[0-9a-fA-F]{8}|[abfnrtv\\'\"])"
)

_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
}


def _decode_escapes(inner: str, quote: str) -> str:
    out = bytearray()
    pos = 0
    while pos < len(inner):
        ch = inner[pos]
        if ch == quote or ch == "\n":
            raise ValueError("unescaped quote or newline")
        if ch != "\\":
            out += ch.encode("utf-8")
            pos += 1
            continue

        match = _ESCAPE.match(inner, pos)
        if not match:
            raise ValueError(f"unknown escape at offset {pos}")
        esc = match.group()[1:]
        kind = esc[0]

        if kind == "x":
            out.append(int(esc[1:], 16))
        elif kind in "01234567":
            value = int(esc, 8)
            if value > 0xFF:
                raise ValueError(f"octal escape out of range: \\{esc}")
            out.append(value)
        elif kind in "uU":
            code = int(esc[1:], 16)
            if code > 0x10FFFF or 0xD800 <= code < 0xE000:
                raise ValueError(f"invalid code point: \\{esc}")
            out += chr(code).encode("utf-8")
        elif kind in "'\"":
            # each quote may only be escaped inside its own literal kind
            if kind != quote:
                raise ValueError(f"unknown escape: \\{esc}")
            out += kind.encode("utf-8")
        else:
            out += _SIMPLE_ESCAPES[kind].encode("utf-8")
        pos = match.end()

    # byte escapes must still add up to valid UTF-8
    return out.decode("utf-8")


def unquote(token: str) -> str:
    """
    Returns the string value of a quoted literal, following Go's
    ``strconv.Unquote`` rules:

    - ``"..."``: interpreted string. Escapes are ``\\a \\b \\f \\n \\r \\t \\v
      \\\\ \\"``, ``\\xHH``, ``\\OOO`` (three octal digits), ``\\uHHHH`` and
      ``\\UHHHHHHHH``. No raw newline.
    - ``'...'``: a single character, with the same escapes (``\\'`` in
      place of ``\\"``).
    - ```...```: raw string, no escapes; carriage returns are dropped.

    Byte escapes must decode to valid UTF-8. Raises ValueError otherwise.
    """
    if len(token) < 2 or token[0] != token[-1]:
        raise ValueError(f"invalid syntax: {token!r}")

    quote = token[0]
    inner = token[1:-1]

    if quote == "`":
        if "`" in inner:
            raise ValueError(f"invalid syntax: {token!r}")
        return inner.replace("\r", "")

    if quote not in "\"'":
        raise ValueError(f"invalid syntax: {token!r}")

    try:
        value = _decode_escapes(inner, quote)
    except ValueError as e:
        raise ValueError(f"invalid syntax: {token!r} ({e})") from e

    if quote == "'" and len(value) != 1:
        raise ValueError(f"invalid syntax: {token!r}")
    return value


def _disk_attachments(tokens: list[str]) -> list[InstanceDiskAttachment]:
    disks = []
    for token in tokens:
        try:
            name = unquote(token)
        except ValueError as e:
            raise ValidationError(
                "Error attaching instance to disk", f"disk name parse error: {e}"
            ) from e
        # Attach only. Disks created here could never be deleted again.
        disks.append(InstanceDiskAttachment(name=name))
    return disks


def _external_ips(tokens: list[str]) -> list[ExternalIpCreate]:
    ips = []
    for token in tokens:
        try:
            pool = unquote(token)
        except ValueError as e:
            raise ValidationError(
                "Error creating external IP addresses", f"IP pool name parse error: {e}"
            ) from e
        ips.append(ExternalIpCreate(pool_name=pool))
    return ips


def build_create_body(spec: InstanceSpec) -> InstanceCreate:
    """Builds the create-instance payload. Pure; never touches the network."""
    body = InstanceCreate(
        name=spec.name,
        description=spec.description,
        hostname=spec.host_name,
        memory=spec.memory,
        ncpus=spec.ncpus,
        start=spec.start_on_create,
        disks=_disk_attachments(spec.attach_to_disks),
        external_ips=_external_ips(spec.external_ips),
        # NICs belong to their own resource: the create response does not say
        # which interface came from which request, so none are made here.
        network_interfaces=NetworkInterfaceAttachment(),
        user_data=spec.user_data or "",
    )
    logger.debug(
        f"translated spec {spec.name}: {len(body.disks)} disk(s), "
        f"{len(body.external_ips)} external IP(s)"
    )
    return body
