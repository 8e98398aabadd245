"""Staging of TLS material for frpc.

frpc terminates TLS for https proxies and needs the certificate of the source
Secret where it runs. In cluster mode the Secret is copied into the namespace
of the frpc Deployment and mounted from there; in agent mode its keys are
written as files under the certificate root.
"""

import abc
import base64
import logging
import shutil
import threading
from pathlib import Path

from kubernetes import client

from frp_operator.appliers import TunnelTarget
from frp_operator.kubernetes import KubernetesStore
from frp_operator.kubernetes.base import (
    COMPONENT_LABEL,
    OPERATOR_LABELS,
    PART_OF_LABEL,
    SOURCE_ANNOTATION,
)
from frp_operator.naming import SecretRef, cert_dir, staged_secret_name

logger = logging.getLogger(__name__)

TLS_COMPONENT = "tls"


class SecretStager(abc.ABC):
    """Makes Secrets available to frpc and forgets them once unused.

    A Secret is staged before the fragment referencing it is applied. Callers
    hold ``lock`` across both steps and across pruning, so a prune never sees
    the staged Secret without its fragment.
    """

    # Shared by every stager, and so by every controller of the process
    lock = threading.Lock()

    @abc.abstractmethod
    def stage(self, target: TunnelTarget, secrets: dict[SecretRef, client.V1Secret]) -> None:
        """Stage the given Secrets for the tunnel client.

        Args:
            target: The tunnel client.
            secrets: The source Secrets, by reference.
        """
        pass

    @abc.abstractmethod
    def prune(self, target: TunnelTarget, keep: set[SecretRef]) -> None:
        """Remove staged material of every Secret not in ``keep``.

        Args:
            target: The tunnel client.
            keep: The Secrets still referenced by some proxy.
        """
        pass


class ClusterSecretStager(SecretStager):
    """Copies Secrets into the namespace of the frpc Deployment."""

    def __init__(self, store: KubernetesStore):
        self.store = store

    def stage(self, target: TunnelTarget, secrets: dict[SecretRef, client.V1Secret]) -> None:
        for ref, secret in sorted(secrets.items()):
            body = {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {
                    "name": staged_secret_name(ref),
                    "namespace": target.namespace,
                    "labels": {**OPERATOR_LABELS, COMPONENT_LABEL: TLS_COMPONENT},
                    "annotations": {SOURCE_ANNOTATION: str(ref)},
                    "ownerReferences": [target.owner_reference],
                },
                "type": secret.type or "kubernetes.io/tls",
                "data": dict(secret.data or {}),
            }
            self.store.secrets.apply_resource(body)
            logger.debug(f"Staged Secret {ref} as {target.namespace}/{staged_secret_name(ref)}")

    def prune(self, target: TunnelTarget, keep: set[SecretRef]) -> None:
        selector = f"{PART_OF_LABEL}={OPERATOR_LABELS[PART_OF_LABEL]},{COMPONENT_LABEL}={TLS_COMPONENT}"
        for secret in self.store.secrets.iter_resources(namespace=target.namespace, label_selector=selector):
            source = SecretRef.parse(self.store.secrets.get_annotations(secret).get(SOURCE_ANNOTATION, ""))
            if source in keep:
                continue
            name = self.store.secrets.get_resource_name(secret)
            logger.info(f"Secret {source or name} is no longer referenced")
            self.store.secrets.delete_resource_if_exists(name, target.namespace)


class FileSecretStager(SecretStager):
    """Writes Secret keys as files under ``<cert_root>/<namespace>/<name>/``.

    Files that already exist are left alone.
    """

    def __init__(self, cert_root: str):
        self.cert_root = Path(cert_root)

    def stage(self, target: TunnelTarget, secrets: dict[SecretRef, client.V1Secret]) -> None:
        for ref, secret in sorted(secrets.items()):
            directory = Path(cert_dir(str(self.cert_root), ref))
            directory.mkdir(parents=True, exist_ok=True)
            for key, value in sorted((secret.data or {}).items()):
                path = directory / key
                if path.exists():
                    continue
                path.write_bytes(base64.b64decode(value))
                path.chmod(0o600)
                logger.info(f"Staged {key} of Secret {ref} to {path}")

    def prune(self, target: TunnelTarget, keep: set[SecretRef]) -> None:
        if not self.cert_root.is_dir():
            return
        for namespace_dir in sorted(p for p in self.cert_root.iterdir() if p.is_dir()):
            for secret_dir in sorted(p for p in namespace_dir.iterdir() if p.is_dir()):
                if SecretRef(namespace_dir.name, secret_dir.name) in keep:
                    continue
                shutil.rmtree(secret_dir)
                logger.info(f"Removed certificates of Secret {namespace_dir.name}/{secret_dir.name}")
            if not any(namespace_dir.iterdir()):
                namespace_dir.rmdir()
