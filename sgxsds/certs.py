"""Certificate requests, certificates and PEM handling for workload identities."""

from __future__ import annotations

import base64
import binascii
import datetime
import logging
import re
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import load_der_private_key
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID, ObjectIdentifier

from .san import (
    URI_PREFIX,
    Extension,
    SANError,
    _read_tlv,
    build_nonce_extension,
    build_pubkey_extension,
    build_quote_extension,
    build_subject_alt_name_extension,
)

log = logging.getLogger(__name__)

DEFAULT_TRUST_DOMAIN = "cluster.local"
SDS_CRED_NAME_PREFIX = "sds://"

_BLOCK_EC = "EC PRIVATE KEY"
_BLOCK_RSA = "RSA PRIVATE KEY"
_BLOCK_PKCS8 = "PRIVATE KEY"

_SERIAL_LIMIT = 1 << 128
_PEM_RE = re.compile(rb"-----BEGIN ([^\r\n]*?)-----\r?\n(.*?)-----END \1-----", re.S)


class CertificateError(ValueError):
    """Raised when a key, request or certificate cannot be parsed or built."""


class SignatureAlgorithm(str, Enum):
    """Signature algorithm for generated keys."""

    ECDSA = "ECDSA"
    RSA = "RSA"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SPIFFEIdentity:
    """A SPIFFE workload identity."""

    trust_domain: str
    namespace: str
    service_account: str

    def __str__(self) -> str:
        return f"{URI_PREFIX}{self.trust_domain}/ns/{self.namespace}/sa/{self.service_account}"


@dataclass
class CertOptions:
    """Options for generating certificates and requests."""

    host: str = ""
    not_before: datetime.datetime | None = None
    ttl: datetime.timedelta = datetime.timedelta(0)
    signer_cert: x509.Certificate | None = None
    signer_priv: Any = None
    signer_priv_pem: bytes = b""
    org: str = ""
    rsa_key_size: int = 0
    is_ca: bool = False
    is_self_signed: bool = False
    is_client: bool = False
    is_server: bool = False
    is_dual_use: bool = False
    pkcs8_key: bool = False
    ec_sig_alg: SignatureAlgorithm | None = None
    dns_names: str = ""
    secret_rotation_grace_period_ratio: float = 0.0


def _to_crypto_ext(ext: Extension) -> x509.UnrecognizedExtension:
    oid = ObjectIdentifier(".".join(map(str, ext.oid)))
    return x509.UnrecognizedExtension(oid, ext.value)


def _decodes_as_base64(value: bytes) -> bool:
    try:
        _, _, _, content, _ = _read_tlv(value)
        base64.b64decode(content, validate=True)
    except (SANError, binascii.Error, ValueError):
        return False
    return True


def gen_csr_template(
    options: CertOptions,
    quote: bytes | None,
    quote_pub_key: bytes | None,
    nonce: bytes | None,
    need_quote_extension: bool,
) -> x509.CertificateSigningRequestBuilder:
    """Return an unsigned CSR builder with the SPIFFE SAN and optional SGX quote extensions."""
    attrs = [x509.NameAttribute(NameOID.COMMON_NAME, "SGX based workload")]
    if options.org:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, options.org))
    builder = x509.CertificateSigningRequestBuilder().subject_name(x509.Name(attrs))

    if options.host:
        san = build_subject_alt_name_extension(options.host)
        builder = builder.add_extension(_to_crypto_ext(san), critical=san.critical)

    if need_quote_extension:
        for label, ext in (
            ("Quote", build_quote_extension(quote or b"")),
            ("Publickey", build_pubkey_extension(quote_pub_key or b"")),
            ("Quote Nonce", build_nonce_extension(nonce or b"")),
        ):
            if not _decodes_as_base64(ext.value):
                log.warning("fail to decode %s ExtensionValue", label)
            builder = builder.add_extension(_to_crypto_ext(ext), critical=ext.critical)
    return builder


def gen_cert_template(
    csr_pem: bytes,
    duration: datetime.timedelta,
    is_ca: bool,
    key_usage: x509.KeyUsage | None,
    ext_key_usage: Iterable[ObjectIdentifier],
) -> x509.CertificateBuilder:
    """Return an unsigned certificate builder for the subject and key of a signed CSR."""
    csr = parse_pem_encoded_csr(csr_pem)
    if not csr.is_signature_valid:
        raise CertificateError("certificate signing request signature is invalid")

    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .public_key(csr.public_key())
        .serial_number(secrets.randbelow(_SERIAL_LIMIT - 1) + 1)
        .not_valid_before(now)
        .not_valid_after(now + duration)
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if key_usage is not None:
        builder = builder.add_extension(key_usage, critical=True)
    usages = list(ext_key_usage)
    if usages:
        builder = builder.add_extension(x509.ExtendedKeyUsage(usages), critical=False)
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        san = None
    if san is not None:
        builder = builder.add_extension(san.value, critical=san.critical)
    return builder


def encode_pem(is_csr: bool, der: bytes) -> bytes:
    """Wrap DER bytes in a CERTIFICATE or CERTIFICATE REQUEST PEM block."""
    kind = "CERTIFICATE REQUEST" if is_csr else "CERTIFICATE"
    body = base64.b64encode(der).decode("ascii")
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return ("".join(f"{line}\n" for line in [f"-----BEGIN {kind}-----", *lines, f"-----END {kind}-----"])).encode()


def _pem_decode(data: bytes) -> tuple[str, bytes] | None:
    match = _PEM_RE.search(data)
    if match is None:
        return None
    text = b"".join(
        line.strip() for line in match.group(2).splitlines() if b":" not in line
    )
    try:
        return match.group(1).decode("ascii", "replace"), base64.b64decode(text, validate=True)
    except binascii.Error:
        return None


def parse_pem_encoded_key(key_bytes: bytes):
    """Parse an EC, PKCS#1 RSA or PKCS#8 private key from PEM."""
    block = _pem_decode(key_bytes)
    if block is None:
        raise CertificateError("invalid PEM-encoded key")
    kind, der = block
    expected = {
        _BLOCK_EC: (ec.EllipticCurvePrivateKey, "failed to parse the ECDSA private key"),
        _BLOCK_RSA: (rsa.RSAPrivateKey, "failed to parse the RSA private key"),
        _BLOCK_PKCS8: (object, "failed to parse the PKCS8 private key"),
    }.get(kind)
    if expected is None:
        raise CertificateError(f"unsupported PEM block type for a private key: {kind}")
    key_type, message = expected
    try:
        key = load_der_private_key(der, password=None)
    except (ValueError, TypeError) as err:
        raise CertificateError(message) from err
    if not isinstance(key, key_type):
        raise CertificateError(message)
    return key


def parse_pem_encoded_certificate(cert_bytes: bytes) -> x509.Certificate:
    """Parse the first PEM block of ``cert_bytes`` as an X.509 certificate."""
    block = _pem_decode(cert_bytes or b"")
    if block is None:
        raise CertificateError("invalid PEM encoded certificate")
    try:
        return x509.load_der_x509_certificate(block[1])
    except ValueError as err:
        raise CertificateError("failed to parse X.509 certificate") from err


def parse_pem_encoded_csr(csr_bytes: bytes) -> x509.CertificateSigningRequest:
    """Parse the first PEM block of ``csr_bytes`` as a certificate signing request."""
    block = _pem_decode(csr_bytes or b"")
    if block is None:
        raise CertificateError("certificate signing request is not properly encoded")
    try:
        return x509.load_der_x509_csr(block[1])
    except ValueError as err:
        raise CertificateError("failed to parse X.509 certificate signing request") from err


def new_ca_certificate() -> tuple[x509.Certificate, rsa.RSAPrivateKey]:
    """Create a self-signed root CA certificate with a new 4096-bit RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=4096)
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "SGX self-signed root certificate authority"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Intel(R) Corporation"),
    ])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(secrets.randbelow((1 << 63) - 2) + 1)
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(
            x509.KeyUsage(
                digital_signature=True, content_commitment=False, key_encipherment=True,
                data_encipherment=False, key_agreement=False, key_cert_sign=True,
                crl_sign=False, encipher_only=False, decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        )
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert, key


def handle_cred_name_for_envoy(cred_name: str) -> str:
    """Strip the ``sds://`` prefix and replace dots with dashes."""
    if not cred_name:
        return cred_name
    return cred_name.removeprefix(SDS_CRED_NAME_PREFIX).replace(".", "-")