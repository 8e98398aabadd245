"""Kubernetes Services handling module.

This module provides specific functionality for managing Kubernetes Services.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)


class ServiceResource(KubernetesResource[client.V1Service]):
    """Handler for Kubernetes Service resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "v1"
    RESOURCE_KIND = "Service"
    LIST_NAMESPACED_CALL = "list_namespaced_service"
    LIST_ALL_CALL = "list_service_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the Service resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for services
        self.api = connection.core_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1Service:
        """Get a specific service by name.

        Args:
            name: Name of the service.
            namespace: Namespace of the service.

        Returns:
            The service object.
        """
        return self.api.read_namespaced_service(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1Service:
        """Patch a service with the given body.

        Args:
            name: Name of the service.
            namespace: Namespace of the service.
            body: The patch body to apply.
            content_type: Patch content type.
        """
        return self.api.patch_namespaced_service(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        self.api.delete_namespaced_service(name, namespace)

    def patch_status(self, name: str, namespace: str, body: dict) -> client.V1Service:
        """Merge-patch the status of a service.

        Args:
            name: Name of the service.
            namespace: Namespace of the service.
            body: The status patch, e.g. ``{"status": {"loadBalancer": {...}}}``.
        """
        return self.api.patch_namespaced_service_status(name, namespace, body, _content_type=PATCH_MERGE)

    def selects(self, service: client.V1Service, labels: dict[str, str]) -> bool:
        """Check whether the service selector matches a set of pod labels."""
        selector = (service.spec.selector if service.spec else None) or {}
        if not selector:
            return False
        return all(labels.get(key) == value for key, value in selector.items())
