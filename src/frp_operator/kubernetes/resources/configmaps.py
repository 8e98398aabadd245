"""Kubernetes ConfigMaps handling module.

ConfigMaps carry the frpc root configuration and one proxy fragment per
source object.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)


class ConfigMapResource(KubernetesResource[client.V1ConfigMap]):
    """Handler for Kubernetes ConfigMap resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "v1"
    RESOURCE_KIND = "ConfigMap"
    LIST_NAMESPACED_CALL = "list_namespaced_config_map"
    LIST_ALL_CALL = "list_config_map_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the ConfigMap resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for config maps
        self.api = connection.core_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1ConfigMap:
        return self.api.read_namespaced_config_map(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1ConfigMap:
        return self.api.patch_namespaced_config_map(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        self.api.delete_namespaced_config_map(name, namespace)
