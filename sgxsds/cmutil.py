"""Helpers for naming certificate-manager resources."""

import random
import time


def generate_secret_name(signer_name: str) -> str:
    """Turn a signer name into a secret name with a random numeric suffix."""
    base = signer_name.replace("/", "-").replace(".", "-")
    rng = random.Random(time.time_ns())
    return f"{base}-{rng.getrandbits(31)}"