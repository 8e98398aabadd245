"""Kubernetes Pods handling module.

Pods are only read: they back the per-replica proxies of a Service.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)


class PodResource(KubernetesResource[client.V1Pod]):
    """Handler for Kubernetes Pod resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "v1"
    RESOURCE_KIND = "Pod"
    LIST_NAMESPACED_CALL = "list_namespaced_pod"
    LIST_ALL_CALL = "list_pod_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        super().__init__(connection, namespace)
        # API client for pods
        self.api = connection.core_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1Pod:
        return self.api.read_namespaced_pod(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1Pod:
        return self.api.patch_namespaced_pod(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        self.api.delete_namespaced_pod(name, namespace)

    def list_for_selector(self, namespace: str, selector: dict[str, str]) -> list[client.V1Pod]:
        """List the pods of a namespace matching an equality selector.

        Args:
            namespace: Namespace of the pods.
            selector: Label equality selector, e.g. a Service's ``spec.selector``.

        Returns:
            The matching pods, or an empty list for an empty selector.
        """
        if not selector:
            return []
        label_selector = ",".join(f"{key}={value}" for key, value in sorted(selector.items()))
        return list(self.iter_resources(namespace=namespace, label_selector=label_selector))
