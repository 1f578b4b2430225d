"""Subject Alternative Name and SGX quote certificate extensions."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable

SCHEME = "spiffe"
URI_PREFIX = SCHEME + "://"

_CLASS_UNIVERSAL = 0
_CLASS_CONTEXT_SPECIFIC = 2
_TAG_UTF8_STRING = 12
_TAG_SEQUENCE = 16

OID_SUBJECT_ALTERNATIVE_NAME = (2, 5, 29, 17)
OID_SUBJECT_QUOTE_EXTENSION_NAME = (1, 3, 6, 1, 4, 1, 54392, 5, 1283)
OID_SUBJECT_PUBKEY_EXTENSION_NAME = (1, 3, 6, 1, 4, 1, 54392, 5, 1284)
OID_SUBJECT_NONCE_EXTENSION_NAME = (1, 3, 6, 1, 4, 1, 54392, 5, 1547)


class SANError(ValueError):
    """Raised when an extension cannot be built or decoded."""


class IdentityType(IntEnum):
    """Kind of identity carried in a SAN entry."""

    DNS = 0
    IP = 1
    URI = 2


# GeneralName choice tags from RFC 5280.
_OID_TAGS = {IdentityType.DNS: 2, IdentityType.URI: 6, IdentityType.IP: 7}
_IDENTITY_TYPES = {tag: kind for kind, tag in _OID_TAGS.items()}


@dataclass(frozen=True)
class Identity:
    """An encoded identifier together with its type."""

    type: int
    value: bytes


@dataclass(frozen=True)
class Extension:
    """A certificate extension: object identifier, criticality and DER value."""

    oid: tuple[int, ...]
    critical: bool = False
    value: bytes = b""


def _encode_tlv(cls: int, constructed: bool, tag: int, content: bytes) -> bytes:
    first = (cls << 6) | (0x20 if constructed else 0)
    if tag < 31:
        header = bytes([first | tag])
    else:
        digits = []
        while True:
            digits.append(tag & 0x7F)
            tag >>= 7
            if not tag:
                break
        digits.reverse()
        header = bytes([first | 0x1F]) + bytes(
            d | 0x80 if i < len(digits) - 1 else d for i, d in enumerate(digits)
        )
    length = len(content)
    if length < 0x80:
        header += bytes([length])
    else:
        raw = length.to_bytes((length.bit_length() + 7) // 8, "big")
        header += bytes([0x80 | len(raw)]) + raw
    return header + content


def _read_tlv(data: bytes) -> tuple[int, bool, int, bytes, bytes]:
    """Decode one DER element; return (class, constructed, tag, content, rest)."""
    truncated = SANError("asn1: syntax error: data truncated")
    if len(data) < 2:
        raise truncated
    first = data[0]
    cls, constructed, tag = first >> 6, bool(first & 0x20), first & 0x1F
    pos = 1
    if tag == 0x1F:
        tag = 0
        while True:
            if pos >= len(data):
                raise truncated
            byte = data[pos]
            pos += 1
            tag = (tag << 7) | (byte & 0x7F)
            if not byte & 0x80:
                break
    if pos >= len(data):
        raise truncated
    length = data[pos]
    pos += 1
    if length & 0x80:
        count = length & 0x7F
        if count == 0 or pos + count > len(data):
            raise truncated if count else SANError("asn1: syntax error: indefinite length found (not DER)")
        length = int.from_bytes(data[pos:pos + count], "big")
        pos += count
    if pos + length > len(data):
        raise truncated
    return cls, constructed, tag, data[pos:pos + length], data[pos + length:]


def build_subject_alt_name_extension(hosts: str) -> Extension:
    """Build a SAN extension from comma-separated IPs, SPIFFE URIs and DNS names."""
    ids = []
    for host in hosts.split(","):
        try:
            ip = ipaddress.ip_address(host)
        except ValueError:
            ip = None
        if ip is not None:
            if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
                ip = ip.ipv4_mapped
            ids.append(Identity(IdentityType.IP, ip.packed))
        elif host.startswith(URI_PREFIX):
            ids.append(Identity(IdentityType.URI, host.encode()))
        else:
            ids.append(Identity(IdentityType.DNS, host.encode()))
    try:
        return build_san_extension(ids)
    except SANError as err:
        raise SANError(f"SAN extension building failure ({err})") from err


def build_san_extension(identities: Iterable[Identity]) -> Extension:
    """Build a critical SAN extension holding the given identities."""
    body = b""
    for identity in identities:
        tag = _OID_TAGS.get(identity.type) if isinstance(identity.type, int) else None
        if tag is None:
            raise SANError(f"unsupported identity type: {identity.type}")
        body += _encode_tlv(_CLASS_CONTEXT_SPECIFIC, False, tag, bytes(identity.value))
    # Critical because the subject is empty, as X.509 and SPIFFE require.
    return Extension(OID_SUBJECT_ALTERNATIVE_NAME, True, _encode_tlv(_CLASS_UNIVERSAL, True, _TAG_SEQUENCE, body))


def extract_ids_from_san(san_ext: Extension) -> list[Identity]:
    """Decode the identities held in a SAN extension."""
    if tuple(san_ext.oid) != OID_SUBJECT_ALTERNATIVE_NAME:
        raise SANError("the input is not a SAN extension")
    cls, constructed, tag, content, rest = _read_tlv(san_ext.value)
    if rest or not constructed or tag != _TAG_SEQUENCE or cls != _CLASS_UNIVERSAL:
        raise SANError("the SAN extension is incorrectly encoded")
    ids = []
    while content:
        _, _, tag, value, content = _read_tlv(content)
        ids.append(Identity(_IDENTITY_TYPES.get(tag, IdentityType.DNS), value))
    return ids


def extract_san_extension(exts: Iterable[Extension]) -> Extension | None:
    """Return the first SAN extension in ``exts``, or None."""
    return next((e for e in exts if tuple(e.oid) == OID_SUBJECT_ALTERNATIVE_NAME), None)


def extract_ids(exts: Iterable[Extension]) -> list[str]:
    """Find the SAN extension among ``exts`` and return its identities as text."""
    san_ext = extract_san_extension(exts)
    if san_ext is None:
        raise SANError("the SAN extension does not exist")
    try:
        ids = extract_ids_from_san(san_ext)
    except SANError as err:
        raise SANError(f"failed to extract identities from SAN extension (error {err})") from err
    return [i.value.decode("utf-8", "surrogateescape") for i in ids]


def _utf8_extension(oid: tuple[int, ...], data: bytes) -> Extension:
    return Extension(oid, False, _encode_tlv(_CLASS_UNIVERSAL, False, _TAG_UTF8_STRING, bytes(data or b"")))


def build_quote_extension(quote: bytes) -> Extension:
    """Build the SGX quote extension."""
    return _utf8_extension(OID_SUBJECT_QUOTE_EXTENSION_NAME, quote)


def build_pubkey_extension(quote_pub_key: bytes) -> Extension:
    """Build the SGX quote public key extension."""
    return _utf8_extension(OID_SUBJECT_PUBKEY_EXTENSION_NAME, quote_pub_key)


def build_nonce_extension(quote_nonce: bytes) -> Extension:
    """Build the SGX quote nonce extension."""
    return _utf8_extension(OID_SUBJECT_NONCE_EXTENSION_NAME, quote_nonce)