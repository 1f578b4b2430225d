"""Label sets attached to workloads, with Kubernetes-style validation."""

from __future__ import annotations

import re

DNS1123_LABEL_MAX_LENGTH = 63
DNS_NAME_PREFIX_MAX_LENGTH = 253

_DNS1123_LABEL_FMT = r"[a-zA-Z0-9](?:[-a-zA-Z0-9]*[a-zA-Z0-9])?"
# A wildcard prefix is '*', a DNS-1123 label led by '*' or '*-', or a plain label.
_WILDCARD_PREFIX = r"(\*|(\*|\*-)?" + _DNS1123_LABEL_FMT + r")"
# Non-empty, alphanumerics plus '-', '_' or '.', starting and ending alphanumeric.
_QUALIFIED_NAME_FMT = r"(?:[A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]"
# Label names may start with a DNS name followed by '/'.
_DNS_NAME_PREFIX_FMT = _DNS1123_LABEL_FMT + r"(?:\." + _DNS1123_LABEL_FMT + r")*/"

_TAG_RE = re.compile("(" + _DNS_NAME_PREFIX_FMT + ")?(" + _QUALIFIED_NAME_FMT + ")")
_LABEL_VALUE_RE = re.compile("(" + _QUALIFIED_NAME_FMT + ")?")
_DNS1123_LABEL_RE = re.compile(_DNS1123_LABEL_FMT)
_WILDCARD_PREFIX_RE = re.compile(_WILDCARD_PREFIX)


class LabelValidationError(ValueError):
    """Raised when one or more labels are malformed; ``errors`` lists each problem."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class Instance(dict):
    """A mapping of label names to values."""

    def subset_of(self, that: dict | None) -> bool:
        """Return True if every label here has the same value in ``that``."""
        if not self:
            return True
        if not that or len(that) < len(self):
            return False
        return all(key in that and that[key] == value for key, value in self.items())

    def equals(self, that: dict | None) -> bool:
        """Return True if both label sets hold exactly the same labels."""
        if that is None:
            return False
        if len(self) != len(that):
            return False
        return self.subset_of(that)

    def validate(self) -> None:
        """Raise LabelValidationError if any key or value is malformed."""
        errors: list[str] = []
        for key, value in self.items():
            problem = _tag_key_problem(key)
            if problem is not None:
                errors.append(problem)
            if _LABEL_VALUE_RE.fullmatch(value) is None:
                errors.append(f"invalid tag value: {value!r}")
        if errors:
            raise LabelValidationError(errors)

    def __str__(self) -> str:
        parts = sorted(f"{key}={value}" if value else key for key, value in self.items())
        return ",".join(parts)


def is_dns1123_label(value: str) -> bool:
    """Return True if ``value`` is a DNS label as defined by RFC 1123."""
    return len(value) <= DNS1123_LABEL_MAX_LENGTH and _DNS1123_LABEL_RE.fullmatch(value) is not None


def is_wildcard_dns1123_label(value: str) -> bool:
    """Like is_dns1123_label, but also accepts '*' and labels led by '*' or '*-'."""
    return len(value) <= DNS1123_LABEL_MAX_LENGTH and _WILDCARD_PREFIX_RE.fullmatch(value) is not None


def _tag_key_problem(key: str) -> str | None:
    match = _TAG_RE.fullmatch(key)
    if match is None:
        return f"invalid tag key: {key!r}"
    prefix = match.group(1) or ""
    if prefix and len(prefix) - 1 > DNS_NAME_PREFIX_MAX_LENGTH:
        return f"invalid tag key: {key!r} (DNS prefix is too long)"
    if len(match.group(2)) > DNS1123_LABEL_MAX_LENGTH:
        return f"invalid tag key: {key!r} (name is too long)"
    return None