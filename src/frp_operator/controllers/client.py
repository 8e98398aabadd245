"""Controller deploying frpc for Client resources (cluster mode)."""

import logging

from pydantic import ValidationError

from frp_operator.appliers import FRPC_DEPLOYMENT
from frp_operator.config import OperatorConfig
from frp_operator.exceptions import MalformedResourceError
from frp_operator.kubernetes import KubernetesStore
from frp_operator.kubernetes.base import OPERATOR_LABELS
from frp_operator.kubernetes.resources.clients import ClientSpec
from frp_operator.kubernetes.resources.deployments import FRPC_CONTAINER
from frp_operator.naming import content_hash
from frp_operator.translate import client_config_from_spec

logger = logging.getLogger(__name__)

ROOT_CONFIG_MAP = "frpc-config"
ROOT_CONFIG_FILE = "frpc.yaml"
ROOT_CONFIG_VOLUME = "frpc-config"
# Rolls the frpc pods when the root configuration changes
ROOT_CONFIG_HASH_ANNOTATION = "frp-operator.io/config-hash"


class ClientController:
    """Keeps the frpc ConfigMap and Deployment of every Client converged.

    Both are owned by the Client, so deleting it garbage collects them; there
    is no finalizer on Clients.
    """

    KIND = "Client"

    def __init__(self, store: KubernetesStore, config: OperatorConfig):
        self.store = store
        self.config = config

    @property
    def handler(self):
        return self.store.clients

    def config_map(self, resource: dict, text: str) -> dict:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": ROOT_CONFIG_MAP,
                "namespace": self.handler.get_resource_namespace(resource),
                "labels": dict(OPERATOR_LABELS),
                "ownerReferences": [self.handler.owner_reference(resource)],
            },
            "data": {ROOT_CONFIG_FILE: text},
        }

    def deployment(self, resource: dict, spec: ClientSpec, text: str) -> dict:
        """Build the frpc Deployment of a Client.

        Proxy fragments and certificates are mounted into this pod template by
        the Ingress and Service controllers. Volumes and mounts are merged by
        name, so applying this body leaves theirs in place.
        """
        container = {
            "name": FRPC_CONTAINER,
            "image": self.config.frpc_image,
            "command": ["frpc", "-c", self.config.root_config_path],
            "volumeMounts": [
                {
                    "name": ROOT_CONFIG_VOLUME,
                    "mountPath": self.config.root_config_path,
                    "subPath": ROOT_CONFIG_FILE,
                    "readOnly": True,
                }
            ],
        }
        if spec.auth is not None and spec.auth.secret:
            container["envFrom"] = [{"secretRef": {"name": spec.auth.secret}}]

        return {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {
                "name": FRPC_DEPLOYMENT,
                "namespace": self.handler.get_resource_namespace(resource),
                "labels": dict(OPERATOR_LABELS),
                "ownerReferences": [self.handler.owner_reference(resource)],
            },
            "spec": {
                "replicas": 1,
                "selector": {"matchLabels": dict(OPERATOR_LABELS)},
                "template": {
                    "metadata": {
                        "labels": dict(OPERATOR_LABELS),
                        "annotations": {ROOT_CONFIG_HASH_ANNOTATION: content_hash(text)},
                    },
                    "spec": {
                        "containers": [container],
                        "volumes": [{"name": ROOT_CONFIG_VOLUME, "configMap": {"name": ROOT_CONFIG_MAP}}],
                    },
                },
            },
        }

    def reconcile(self, namespace: str, name: str) -> float | None:
        """Converge the frpc workload of one Client.

        Args:
            namespace: Namespace of the Client.
            name: Name of the Client.

        Returns:
            Seconds until the Client should be reconciled again, or None to forget it.
        """
        resource = self.handler.get_resource_or_none(name, namespace)
        if resource is None or self.handler.is_deleting(resource):
            logger.debug(f"Client {namespace}/{name} is gone")
            return None

        try:
            spec = self.handler.get_spec(resource)
        except ValidationError as e:
            raise MalformedResourceError(f"Client {namespace}/{name} has an invalid spec: {e}") from e

        text = client_config_from_spec(spec, self.config.config_root).to_yaml()
        logger.debug(f"Root config of Client {namespace}/{name}:\n{text}")

        self.store.config_maps.apply_resource(self.config_map(resource, text))
        self.store.deployments.apply_resource(self.deployment(resource, spec, text))
        logger.info(f"Reconciled frpc of Client {namespace}/{name}")
        return self.config.reconciliation_interval
