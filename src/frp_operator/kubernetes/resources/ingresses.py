"""Kubernetes Ingresses handling module.

This module provides specific functionality for managing Kubernetes Ingresses.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)


class IngressResource(KubernetesResource[client.V1Ingress]):
    """Handler for Kubernetes Ingress resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "networking.k8s.io/v1"
    RESOURCE_KIND = "Ingress"
    LIST_NAMESPACED_CALL = "list_namespaced_ingress"
    LIST_ALL_CALL = "list_ingress_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the Ingress resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for ingresses
        self.api = connection.networking_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1Ingress:
        """Get a specific ingress by name.

        Args:
            name: Name of the ingress.
            namespace: Namespace of the ingress.

        Returns:
            The ingress object.
        """
        return self.api.read_namespaced_ingress(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1Ingress:
        """Patch an ingress with the given body.

        Args:
            name: Name of the ingress.
            namespace: Namespace of the ingress.
            body: The patch body to apply.
            content_type: Patch content type.
        """
        return self.api.patch_namespaced_ingress(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        self.api.delete_namespaced_ingress(name, namespace)

    def patch_status(self, name: str, namespace: str, body: dict) -> client.V1Ingress:
        """Merge-patch the status of an ingress.

        Args:
            name: Name of the ingress.
            namespace: Namespace of the ingress.
            body: The status patch, e.g. ``{"status": {"loadBalancer": {...}}}``.
        """
        return self.api.patch_namespaced_ingress_status(name, namespace, body, _content_type=PATCH_MERGE)
