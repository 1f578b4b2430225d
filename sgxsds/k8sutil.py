"""Parsing of Kubernetes certificate signer names."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SignerIssuerRef:
    """Issuer reference named by a signer: ``<type>.<group>/[<namespace>.]<name>``."""

    namespace: str
    name: str
    type: str
    group: str


def signer_issuer_ref_from_signer_name(name: str) -> SignerIssuerRef | None:
    """Parse a CSR signer name; return None if it is not of the expected form."""
    parts = name.split("/")
    if len(parts) != 2:
        return None

    type_parts = parts[0].split(".", 1)
    name_parts = parts[1].split(".")
    if len(type_parts) < 2 or name_parts[0] == "":
        return None

    issuer_type, group = type_parts
    if len(name_parts) == 1:
        return SignerIssuerRef("", name_parts[0], issuer_type, group)

    # Cluster issuers have no namespace.
    if issuer_type == "clusterissuers":
        return SignerIssuerRef("", ".".join(name_parts), issuer_type, group)

    return SignerIssuerRef(name_parts[0], ".".join(name_parts[1:]), issuer_type, group)