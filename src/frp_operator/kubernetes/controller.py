"""Kubernetes store module.

This module provides the registry of resource handlers shared by every
controller of the operator.
"""

import logging

from kubernetes import client

from frp_operator.kubernetes.base import KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection
from frp_operator.kubernetes.resources.clients import ClientResource
from frp_operator.kubernetes.resources.configmaps import ConfigMapResource
from frp_operator.kubernetes.resources.deployments import DeploymentResource
from frp_operator.kubernetes.resources.ingresses import IngressResource
from frp_operator.kubernetes.resources.pods import PodResource
from frp_operator.kubernetes.resources.secrets import SecretResource
from frp_operator.kubernetes.resources.services import ServiceResource

logger = logging.getLogger(__name__)


class KubernetesStore:
    """Access point to the Kubernetes API for the whole operator.

    This class owns the connection and one handler per resource type. It also
    serves the read-only lookups needed while translating objects into proxies.
    """

    def __init__(self, namespace: str | None = None, connection: KubernetesConnection | None = None):
        """Initialize the store.

        Args:
            namespace: Optional namespace to filter watched resources. If None, all namespaces will be used.
            connection: The Kubernetes connection to use. A new one is created if None.
        """
        self.namespace = namespace
        self.connection = connection or KubernetesConnection()

        # Watched kinds honour the namespace filter, the others are addressed explicitly
        self.clients = ClientResource(self.connection)
        self.ingresses = IngressResource(self.connection, namespace)
        self.services = ServiceResource(self.connection, namespace)
        self.pods = PodResource(self.connection, namespace)
        self.secrets = SecretResource(self.connection)
        self.config_maps = ConfigMapResource(self.connection)
        self.deployments = DeploymentResource(self.connection)

        self.resources: dict[str, KubernetesResource] = {
            "clients": self.clients,
            "ingresses": self.ingresses,
            "services": self.services,
            "pods": self.pods,
            "secrets": self.secrets,
            "configmaps": self.config_maps,
            "deployments": self.deployments,
        }
        logger.debug(f"Registered resource handlers: {', '.join(self.resources)}")

    def get_handler(self, resource_type: str) -> KubernetesResource | None:
        """Get the handler for a specific resource type.

        Args:
            resource_type: The name of the resource type.

        Returns:
            The handler for the requested resource type, or None if not found.
        """
        handler = self.resources.get(resource_type)
        if not handler:
            logger.warning(f"No handler registered for resource type {resource_type}")
        return handler

    def get_service(self, name: str, namespace: str) -> client.V1Service | None:
        return self.services.get_resource_or_none(name, namespace)

    def get_secret(self, name: str, namespace: str) -> client.V1Secret | None:
        return self.secrets.get_resource_or_none(name, namespace)

    def list_pods(self, namespace: str, selector: dict[str, str]) -> list[client.V1Pod]:
        return self.pods.list_for_selector(namespace, selector)
