"""Cached workload secrets, gateway credentials and rotation timing."""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from .certs import CertOptions

log = logging.getLogger(__name__)

ROOT_CERT_NAME = "ROOTCA"
WORKLOAD_CERT_NAME = "default"
DEFAULT_RSA_KEY_SIZE = 2048
DEFAULT_EXPIRATION_SECONDS = 86400
CERT_WATCH_TIMEOUT = datetime.timedelta(seconds=60)
CERT_READ_INTERVAL = datetime.timedelta(milliseconds=500)
MAX_RETRY_TIME = 20
QUOTE_ATTESTATION_PREFIX = "sgxquoteattestation-"


@dataclass
class SecretItem:
    """A certificate chain with its key label, root and validity window."""

    certificate_chain: bytes = b""
    private_key_label: bytes = b""
    root_cert: bytes = b""
    # "ROOTCA" for a root cert request, "default" for a key/cert request.
    resource_name: str = ""
    created_time: datetime.datetime | None = None
    expire_time: datetime.datetime | None = None


@dataclass
class GatewayCred:
    """Credentials served to a gateway, with events signalling their arrival."""

    sgx_key_label: str = ""
    cert_data: bytes = b""
    root_data: bytes = b""
    cert_sync: threading.Event = field(default_factory=threading.Event)
    root_sync: threading.Event = field(default_factory=threading.Event)


class SecretCache:
    """Thread-safe store for the root cert, workload secret, CSR and gateway credentials."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._root_cert: bytes | None = None
        self._workload: SecretItem | None = None
        self._csr_bytes: bytes | None = None
        self._creds: dict[str, GatewayCred] = {}

    @property
    def root_cert(self) -> bytes | None:
        with self._lock:
            return self._root_cert

    @root_cert.setter
    def root_cert(self, value: bytes | None) -> None:
        with self._lock:
            self._root_cert = value

    @property
    def workload(self) -> SecretItem | None:
        with self._lock:
            return self._workload

    @workload.setter
    def workload(self, value: SecretItem | None) -> None:
        with self._lock:
            self._workload = value

    @property
    def csr_bytes(self) -> bytes | None:
        with self._lock:
            return self._csr_bytes

    @csr_bytes.setter
    def csr_bytes(self, value: bytes | None) -> None:
        with self._lock:
            self._csr_bytes = value

    @property
    def creds(self) -> dict[str, GatewayCred]:
        """A snapshot of the gateway credentials by key."""
        with self._lock:
            return dict(self._creds)

    def _put_cred(self, key: str, cred: GatewayCred) -> None:
        with self._lock:
            self._creds[key] = cred

    def _pop_cred(self, key: str) -> GatewayCred | None:
        with self._lock:
            return self._creds.pop(key, None)

    def _cred(self, key: str) -> GatewayCred:
        with self._lock:
            return self._creds[key]


class SecretManager:
    """Holds cached secrets for the SDS server and decides when to rotate them."""

    def __init__(self, config_options: CertOptions | None = None, name: str = "SecretManager for SDS Server"):
        self.name = name
        self.config_options = config_options if config_options is not None else CertOptions()
        self.cache = SecretCache()
        self.stop = threading.Event()
        self._lock = threading.Lock()
        self._secret_handler: Callable[[str], None] | None = None

    @property
    def secret_handler(self) -> Callable[[str], None] | None:
        """The callback invoked when a secret changes, if one is registered."""
        with self._lock:
            return self._secret_handler

    def register_secret_handler(self, handler: Callable[[str], None]) -> None:
        """Register the callback to invoke with a resource name when its secret changes."""
        with self._lock:
            self._secret_handler = handler

    def get_cached_secret(self, resource_name: str) -> tuple[SecretItem | None, bool]:
        """Return the cached secret for ``resource_name`` and whether it is the root CA."""
        if resource_name == ROOT_CERT_NAME:
            return SecretItem(resource_name=resource_name, root_cert=self.cache.root_cert or b""), True
        return self.cache.workload, False

    def rotate_time(self, secret: SecretItem) -> datetime.timedelta:
        """Return how long to wait before rotating ``secret``; never negative."""
        if secret.created_time is None or secret.expire_time is None:
            raise ValueError("secret has no validity window")
        lifetime = secret.expire_time - secret.created_time
        grace = lifetime * self.config_options.secret_rotation_grace_period_ratio
        now = datetime.datetime.now(secret.expire_time.tzinfo)
        delay = secret.expire_time - grace - now
        return max(delay, datetime.timedelta(0))

    def set_cred(self, key: str, cred: GatewayCred) -> None:
        """Store gateway credentials under ``key``."""
        self.cache._put_cred(key, cred)

    def delete_cred(self, key: str) -> bool:
        """Remove the credentials under ``key``, waking any waiters; True if found."""
        log.info("Delete gateway credentials with key %s", key)
        cred = self.cache._pop_cred(key)
        if cred is None:
            return False
        cred.cert_sync.set()
        cred.root_sync.set()
        return True

    def gateway_key_label(self, key: str) -> str:
        """Return the SGX key label of the gateway credentials under ``key``."""
        return self.cache._cred(key).sgx_key_label

    def gateway_cert(self, key: str) -> bytes:
        """Return the certificate of the gateway credentials under ``key``."""
        return self.cache._cred(key).cert_data

    def gateway_ca(self, key: str) -> bytes:
        """Return the CA certificate of the gateway credentials under ``key``."""
        return self.cache._cred(key).root_data