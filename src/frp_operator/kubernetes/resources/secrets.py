"""Kubernetes Secrets handling module.

This module provides specific functionality for managing Kubernetes Secrets.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)


class SecretResource(KubernetesResource[client.V1Secret]):
    """Handler for Kubernetes Secret resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "v1"
    RESOURCE_KIND = "Secret"
    LIST_NAMESPACED_CALL = "list_namespaced_secret"
    LIST_ALL_CALL = "list_secret_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the Secret resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for secrets
        self.api = connection.core_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1Secret:
        """Get a specific secret by name.

        Args:
            name: Name of the secret.
            namespace: Namespace of the secret.

        Returns:
            The secret object.
        """
        return self.api.read_namespaced_secret(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1Secret:
        """Patch a secret with the given body.

        Args:
            name: Name of the secret.
            namespace: Namespace of the secret.
            body: The patch body to apply.
            content_type: Patch content type.
        """
        return self.api.patch_namespaced_secret(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        """Delete a secret.

        Args:
            name: Name of the secret.
            namespace: Namespace of the secret.
        """
        self.api.delete_namespaced_secret(name, namespace)
