"""Kubernetes connection management.

This module handles the connection to the Kubernetes API.
"""
import logging
import os
import socket

from kubernetes import client, config

logger = logging.getLogger(__name__)


class KubernetesConnection:
    """Connection manager for the Kubernetes API.

    This class manages authentication and connection to the Kubernetes API.
    It is shared among all resource handlers to avoid duplication of connection logic.
    """

    def __init__(self):
        """Initialize the Kubernetes connection.

        Attempts to connect to the Kubernetes API using in-cluster config first,
        falling back to kubeconfig for local development.
        """
        self._setup_connection()
        # Get hostname for event reporting
        self.hostname = socket.gethostname()
        # Unique identifier for this instance
        self.instance_id = os.environ.get("HOSTNAME", self.hostname)

    def _setup_connection(self) -> None:
        """Set up the connection to the Kubernetes API."""
        try:
            # Try to load in-cluster config first (for when running in a pod)
            config.load_incluster_config()
            logger.info("Using in-cluster configuration")
        except config.ConfigException:
            try:
                # Fall back to kubeconfig for local development
                config.load_kube_config()
                logger.info("Using kubeconfig configuration")
            except config.ConfigException as e:
                logger.error(
                    "Failed to load Kubernetes configuration. Ensure that the kubeconfig file is available and valid."
                )
                raise RuntimeError(
                    "Kubernetes configuration error: kubeconfig file is missing or invalid.") from e

        # Initialize API clients
        self.apps_v1_api = client.AppsV1Api()
        self.core_v1_api = client.CoreV1Api()
        self.networking_v1_api = client.NetworkingV1Api()
        self.custom_objects_api = client.CustomObjectsApi()
        self.events_v1_api = client.EventsV1Api()

        # Shared for model serialization
        self.api_client = self.apps_v1_api.api_client

    def to_dict(self, obj) -> dict:
        """Convert an API model object to its JSON dictionary form (camelCase keys)."""
        return self.api_client.sanitize_for_serialization(obj)
