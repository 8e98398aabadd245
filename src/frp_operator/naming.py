"""Deterministic names for everything the operator creates.

Every artifact is derived from the identity of its source object so that a
later reconcile, or the cleanup of that object, finds exactly the same names
again without keeping any state.
"""

import re
from hashlib import sha256
from pathlib import PurePosixPath
from typing import NamedTuple

# Annotation key prefix for per-artifact config hashes on the frpc pod template
CONFIG_HASH_ANNOTATION_PREFIX = "proxy.frp-operator.io"
FRAGMENT_PREFIX = "proxy-"
FRAGMENT_SUFFIX = ".yaml"
FRAGMENT_GLOB = f"{FRAGMENT_PREFIX}*{FRAGMENT_SUFFIX}"
CONFIG_VOLUME_PREFIX = "config-proxy-"
CERT_VOLUME_PREFIX = "certs-"

_DNS_LABEL_LIMIT = 63
_DNS_SUBDOMAIN_LIMIT = 253


class SecretRef(NamedTuple):
    """Reference to a source Secret holding TLS material."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "SecretRef | None":
        namespace, separator, name = value.strip().partition("/")
        if not separator or not namespace or not name:
            return None
        return cls(namespace, name)


def _shorten(normalized: str, original: str, limit: int) -> str:
    if len(normalized) <= limit:
        return normalized
    suffix = sha256(original.encode("utf-8")).hexdigest()[:10]
    trimmed = normalized[: limit - len(suffix) - 1].rstrip("-.")
    return f"{trimmed}-{suffix}"


def dns_label(name: str) -> str:
    """Turn ``name`` into a valid DNS-1123 label, hashing the tail if too long."""
    normalized = re.sub(r"[^a-z0-9-]+", "-", name.lower()).strip("-")
    return _shorten(normalized, name, _DNS_LABEL_LIMIT)


def dns_subdomain(name: str) -> str:
    """Turn ``name`` into a valid DNS-1123 subdomain, hashing the tail if too long."""
    normalized = re.sub(r"[^a-z0-9.-]+", "-", name.lower()).strip("-.")
    return _shorten(normalized, name, _DNS_SUBDOMAIN_LIMIT)


def _qualified(namespace: str, name: str) -> str:
    """``<namespace>-<name>`` followed by a short hash of the pair.

    Namespaces and names both allow dashes, so without the hash ``team-a/shop``
    and ``team/a-shop`` would share every derived name.
    """
    digest = sha256(f"{namespace}/{name}".encode("utf-8")).hexdigest()[:8]
    return f"{namespace}-{name}-{digest}"


def artifact_name(kind: str, namespace: str, name: str) -> str:
    """Name shared by all artifacts generated for one source object."""
    return dns_label(f"{kind.lower()}-{_qualified(namespace, name)}")


def fragment_filename(artifact: str) -> str:
    return f"{FRAGMENT_PREFIX}{artifact}{FRAGMENT_SUFFIX}"


def artifact_from_fragment(filename: str) -> str | None:
    if not (filename.startswith(FRAGMENT_PREFIX) and filename.endswith(FRAGMENT_SUFFIX)):
        return None
    return filename[len(FRAGMENT_PREFIX):-len(FRAGMENT_SUFFIX)]


def config_map_name(artifact: str) -> str:
    return dns_subdomain(f"frpc-config-proxy-{artifact}")


def config_volume_name(artifact: str) -> str:
    return dns_label(f"{CONFIG_VOLUME_PREFIX}{artifact}")


def config_hash_annotation(artifact: str) -> str:
    return f"{CONFIG_HASH_ANNOTATION_PREFIX}/{config_volume_name(artifact)}"


def staged_secret_name(ref: SecretRef) -> str:
    return dns_subdomain(f"frpc-tls-{_qualified(ref.namespace, ref.name)}")


def cert_volume_name(ref: SecretRef) -> str:
    return dns_label(f"{CERT_VOLUME_PREFIX}{_qualified(ref.namespace, ref.name)}")


def cert_dir(cert_root: str, ref: SecretRef) -> str:
    return str(PurePosixPath(cert_root) / ref.namespace / ref.name)


def secret_ref_from_cert_path(cert_root: str, path: str) -> SecretRef | None:
    """Recover the Secret a certificate file was staged from."""
    try:
        relative = PurePosixPath(path).parent.relative_to(cert_root)
    except ValueError:
        return None
    if len(relative.parts) != 2:
        return None
    return SecretRef(*relative.parts)


def content_hash(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()[:16]
