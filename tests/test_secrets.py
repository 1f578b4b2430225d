import datetime
import threading

import pytest

from sgxsds.certs import CertOptions
from sgxsds.secrets import (
    ROOT_CERT_NAME,
    GatewayCred,
    SecretCache,
    SecretItem,
    SecretManager,
)

NOW = datetime.datetime.now(datetime.timezone.utc)
S = datetime.timedelta(seconds=1)
M = datetime.timedelta(minutes=1)
H = datetime.timedelta(hours=1)


@pytest.mark.parametrize(
    "created, expire, ratio, expected",
    [
        (NOW - 2 * S, NOW - S, 0.5, datetime.timedelta(0)),
        (NOW, NOW + H, 0.5, 30 * M),
        (NOW, NOW + H, 0.25, 45 * M),
        (NOW, NOW + H, 0.75, 15 * M),
        (NOW, NOW + H, 1, datetime.timedelta(0)),
        (NOW, NOW + H, 0, H),
        (NOW + 30 * M, NOW + 90 * M, 0.25, 75 * M),
    ],
    ids=["expired", "0.5", "0.25", "0.75", "1", "0", "0.25 shifted"],
)
def test_rotate_time(created, expire, ratio, expected):
    manager = SecretManager(CertOptions(secret_rotation_grace_period_ratio=ratio))
    got = manager.rotate_time(SecretItem(created_time=created, expire_time=expire))
    assert abs(got - expected) < 5 * S


def test_rotate_time_never_negative():
    manager = SecretManager(CertOptions(secret_rotation_grace_period_ratio=0.5))
    got = manager.rotate_time(SecretItem(created_time=NOW - 10 * H, expire_time=NOW - 5 * H))
    assert got == datetime.timedelta(0)


def test_rotate_time_requires_window():
    with pytest.raises(ValueError):
        SecretManager().rotate_time(SecretItem())


def test_cache_roundtrip():
    cache = SecretCache()
    assert cache.root_cert is None
    cache.root_cert = b"root"
    cache.csr_bytes = b"csr"
    item = SecretItem(resource_name="default")
    cache.workload = item
    assert cache.root_cert == b"root"
    assert cache.csr_bytes == b"csr"
    assert cache.workload is item


def test_get_cached_secret_root():
    manager = SecretManager()
    manager.cache.root_cert = b"root-pem"
    item, is_ca = manager.get_cached_secret(ROOT_CERT_NAME)
    assert is_ca is True
    assert item.resource_name == ROOT_CERT_NAME
    assert item.root_cert == b"root-pem"


def test_get_cached_secret_workload():
    manager = SecretManager()
    assert manager.get_cached_secret("default") == (None, False)
    workload = SecretItem(certificate_chain=b"chain", resource_name="default")
    manager.cache.workload = workload
    item, is_ca = manager.get_cached_secret("default")
    assert is_ca is False
    assert item is workload


def test_gateway_creds():
    manager = SecretManager()
    cred = GatewayCred(sgx_key_label="label", cert_data=b"cert", root_data=b"ca")
    manager.set_cred("gw", cred)
    assert manager.gateway_key_label("gw") == "label"
    assert manager.gateway_cert("gw") == b"cert"
    assert manager.gateway_ca("gw") == b"ca"
    assert set(manager.cache.creds) == {"gw"}


def test_gateway_missing_key():
    manager = SecretManager()
    with pytest.raises(KeyError):
        manager.gateway_cert("missing")


def test_delete_cred_signals_waiters():
    manager = SecretManager()
    cred = GatewayCred()
    manager.set_cred("gw", cred)
    assert manager.delete_cred("gw") is True
    assert cred.cert_sync.is_set() and cred.root_sync.is_set()
    assert manager.cache.creds == {}
    assert manager.delete_cred("gw") is False


def test_register_secret_handler():
    manager = SecretManager()
    seen = []
    manager.register_secret_handler(seen.append)
    manager.secret_handler("default")
    assert seen == ["default"]


def test_cache_concurrent_writes():
    manager = SecretManager()

    def worker(n):
        manager.set_cred(f"k{n}", GatewayCred(sgx_key_label=str(n)))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(manager.cache.creds) == 20
    assert manager.gateway_key_label("k7") == "7"