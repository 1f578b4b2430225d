# sgxsds

Building blocks for a secret discovery service that issues workload
certificates: SPIFFE identities, X.509 Subject Alternative Name and quote
extensions, CSR and certificate builders, PEM handling, an in-memory secret
cache with rotation timing, and a few Kubernetes helpers.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Modules

- `sgxsds.san`: `Identity`, `IdentityType` (`DNS`, `IP`, `URI`) and
  `Extension`. Build and parse Subject Alternative Name extensions with
  `build_subject_alt_name_extension`, `build_san_extension`,
  `extract_ids_from_san`, `extract_san_extension` and `extract_ids`. Build
  the non-critical quote, public-key and nonce extensions with
  `build_quote_extension`, `build_pubkey_extension` and
  `build_nonce_extension`. Failures raise `SANError`.
- `sgxsds.certs`: `SPIFFEIdentity` (its `str()` is
  `spiffe://<trust domain>/ns/<namespace>/sa/<service account>`),
  `CertOptions` and `SignatureAlgorithm`. `gen_csr_template` returns an
  unsigned `cryptography` CSR builder carrying the SAN and, if asked, the
  quote extensions; `gen_cert_template` checks a PEM CSR's signature and
  returns an unsigned certificate builder for its subject and key. PEM
  helpers: `encode_pem`, `parse_pem_encoded_key` (EC, PKCS#1 RSA and PKCS#8),
  `parse_pem_encoded_certificate`, `parse_pem_encoded_csr`.
  `new_ca_certificate` makes a self-signed one-year CA with a new 4096-bit
  RSA key. `handle_cred_name_for_envoy` strips `sds://` and turns dots into
  dashes. Failures raise `CertificateError`.
- `sgxsds.secrets`: `SecretItem`, `GatewayCred`, the thread-safe
  `SecretCache` and `SecretManager`. The manager returns cached secrets
  (`get_cached_secret`), stores and removes gateway credentials (`set_cred`,
  `delete_cred`, `gateway_key_label`, `gateway_cert`, `gateway_ca`), keeps a
  secret-change callback (`register_secret_handler`) and computes how long to
  wait before rotating a certificate (`rotate_time`), using
  `CertOptions.secret_rotation_grace_period_ratio`.
- `sgxsds.labels`: `Instance`, a dict of labels with `subset_of`, `equals`,
  `validate` (raises `LabelValidationError`) and a sorted `key=value` string
  form; `is_dns1123_label` and `is_wildcard_dns1123_label`.
- `sgxsds.k8sutil`: `signer_issuer_ref_from_signer_name` parses
  `<type>.<group>/[<namespace>.]<name>` into a `SignerIssuerRef`, or returns
  `None`.
- `sgxsds.downward`: `parse_downward_api`, `read_pod_labels(path)` and
  `read_pod_annotations(path)` for `key="quoted value"` files.
- `sgxsds.cmutil`: `generate_secret_name` adds a random numeric suffix to a
  signer name with `/` and `.` turned into `-`.
- `sgxsds.event`: the `Event` enumeration (`ADD`, `UPDATE`, `DELETE`).
- `sgxsds.uds`: `new_listener(path)` returns a listening Unix domain socket
  whose file is made world read/writable.

## Example

```python
from sgxsds.san import build_subject_alt_name_extension, extract_ids

ext = build_subject_alt_name_extension(
    "spiffe://cluster.local/ns/default/sa/default,example.com"
)
print(ext.critical)        # True
print(extract_ids([ext]))  # ['spiffe://cluster.local/ns/default/sa/default', 'example.com']
```

```python
from sgxsds.labels import Instance

Instance({"app": "a"}).subset_of(Instance({"app": "a", "env": "prod"}))  # True
Instance({"key$": "value"}).validate()  # raises LabelValidationError
```

## What it does not do

The package has no command and runs no server: it does not serve secrets
over gRPC, and `new_listener` only opens the socket. It holds no keys in
hardware or enclaves and produces no quotes; CSR and certificate builders
come back unsigned for the caller to sign with a key of its own.
`SecretManager` caches and times secrets but does not issue, fetch or
schedule their renewal.