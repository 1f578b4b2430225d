"""SPIFFE SAN extensions, certificate helpers, a secret cache and Kubernetes utilities."""

__version__ = "0.1.0"