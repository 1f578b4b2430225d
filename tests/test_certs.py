import base64
import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID, ObjectIdentifier

from sgxsds.certs import (
    CertificateError,
    CertOptions,
    SignatureAlgorithm,
    SPIFFEIdentity,
    encode_pem,
    gen_cert_template,
    gen_csr_template,
    handle_cred_name_for_envoy,
    new_ca_certificate,
    parse_pem_encoded_certificate,
    parse_pem_encoded_csr,
    parse_pem_encoded_key,
)
from sgxsds.san import build_quote_extension


@pytest.fixture(scope="module")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


def _csr_pem(key, need_quote=True):
    host = str(SPIFFEIdentity("cluster.local", "default", "default"))
    builder = gen_csr_template(
        CertOptions(host=host, org="example"),
        base64.b64encode(b"q"), base64.b64encode(b"p"), base64.b64encode(b"n"), need_quote,
    )
    csr = builder.sign(key, hashes.SHA256())
    return encode_pem(True, csr.public_bytes(serialization.Encoding.DER))


def test_spiffe_identity_string():
    assert str(SPIFFEIdentity("cluster.local", "ns1", "sa1")) == "spiffe://cluster.local/ns/ns1/sa/sa1"


def test_signature_algorithm_str():
    assert str(SignatureAlgorithm("ECDSA")) == "ECDSA"
    assert str(SignatureAlgorithm("RSA")) == "RSA"


def test_csr_template_round_trip(ec_key):
    csr = parse_pem_encoded_csr(_csr_pem(ec_key))
    assert csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "SGX based workload"
    san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    assert san.critical
    assert san.value.get_values_for_type(x509.UniformResourceIdentifier) == [
        "spiffe://cluster.local/ns/default/sa/default"
    ]
    quote = csr.extensions.get_extension_for_oid(ObjectIdentifier("1.3.6.1.4.1.54392.5.1283"))
    assert quote.value.value == build_quote_extension(base64.b64encode(b"q")).value


def test_csr_without_quote(ec_key):
    csr = parse_pem_encoded_csr(_csr_pem(ec_key, need_quote=False))
    assert len(csr.extensions) == 1


def test_cert_template(ec_key):
    builder = gen_cert_template(_csr_pem(ec_key), datetime.timedelta(hours=24), False, None, [])
    cert = builder.issuer_name(x509.Name([])).sign(ec_key, hashes.SHA256())
    assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is False
    assert cert.public_key().public_numbers() == ec_key.public_key().public_numbers()
    span = cert.not_valid_after_utc - cert.not_valid_before_utc
    assert span == datetime.timedelta(hours=24)
    pem = encode_pem(False, cert.public_bytes(serialization.Encoding.DER))
    assert parse_pem_encoded_certificate(pem).serial_number == cert.serial_number


def test_encode_pem_header():
    assert encode_pem(True, b"\x00").startswith(b"-----BEGIN CERTIFICATE REQUEST-----\n")
    assert encode_pem(False, b"\x00").endswith(b"-----END CERTIFICATE-----\n")


def test_parse_key_round_trip(ec_key):
    pem = ec_key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    )
    assert parse_pem_encoded_key(pem).private_numbers() == ec_key.private_numbers()
    sec1 = ec_key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.TraditionalOpenSSL, serialization.NoEncryption()
    )
    assert parse_pem_encoded_key(sec1).private_numbers() == ec_key.private_numbers()


def test_parse_key_errors():
    with pytest.raises(CertificateError, match="invalid PEM-encoded key"):
        parse_pem_encoded_key(b"nothing")
    with pytest.raises(CertificateError, match="unsupported PEM block type"):
        parse_pem_encoded_key(encode_pem(False, b"\x00"))


def test_parse_certificate_errors():
    with pytest.raises(CertificateError, match="invalid PEM encoded certificate"):
        parse_pem_encoded_certificate(b"junk")
    with pytest.raises(CertificateError, match="failed to parse X.509 certificate"):
        parse_pem_encoded_certificate(encode_pem(False, b"\x01\x02"))
    with pytest.raises(CertificateError):
        parse_pem_encoded_csr(b"")


def test_new_ca_certificate():
    cert, key = new_ca_certificate()
    assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    assert cert.subject == cert.issuer
    assert cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)[0].value == "Intel(R) Corporation"
    assert key.key_size == 4096


@pytest.mark.parametrize(
    "name,expected",
    [("", ""), ("sds://a.b.c", "a-b-c"), ("plain", "plain")],
)
def test_handle_cred_name_for_envoy(name, expected):
    assert handle_cred_name_for_envoy(name) == expected