"""Kubernetes Deployments handling module.

This module provides specific functionality for managing Kubernetes Deployments,
in particular the optimistic update of the frpc pod template.
"""

import logging
from collections.abc import Callable

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from frp_operator.exceptions import ConflictError, ResolutionError
from frp_operator.kubernetes.base import PATCH_JSON, PATCH_MERGE, KubernetesResource, is_conflict, is_not_found
from frp_operator.kubernetes.connection import KubernetesConnection
from frp_operator.volumes import PodTemplate

logger = logging.getLogger(__name__)

# Name of the container running frpc in the managed Deployment
FRPC_CONTAINER = "frpc"
# Attempts before giving up on a contended pod template
UPDATE_ATTEMPTS = 5


class DeploymentResource(KubernetesResource[client.V1Deployment]):
    """Handler for Kubernetes Deployment resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = "apps/v1"
    RESOURCE_KIND = "Deployment"
    LIST_NAMESPACED_CALL = "list_namespaced_deployment"
    LIST_ALL_CALL = "list_deployment_for_all_namespaces"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the Deployment resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for deployments
        self.api = connection.apps_v1_api

    def get_resource(self, name: str, namespace: str) -> client.V1Deployment:
        """Get a specific deployment by name.

        Args:
            name: Name of the deployment.
            namespace: Namespace of the deployment.

        Returns:
            The deployment object.
        """
        return self.api.read_namespaced_deployment(name, namespace)

    def patch_resource(
        self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs
    ) -> client.V1Deployment:
        """Patch a deployment with the given body.

        Args:
            name: Name of the deployment.
            namespace: Namespace of the deployment.
            body: The patch body to apply.
            content_type: Patch content type.
        """
        return self.api.patch_namespaced_deployment(name, namespace, body, _content_type=content_type, **kwargs)

    def delete_resource(self, name: str, namespace: str) -> None:
        """Delete a deployment.

        Args:
            name: Name of the deployment.
            namespace: Namespace of the deployment.
        """
        self.api.delete_namespaced_deployment(name, namespace)

    @staticmethod
    def _container_index(containers: list[dict]) -> int:
        for index, container in enumerate(containers):
            if container.get("name") == FRPC_CONTAINER:
                return index
        return 0

    def read_pod_template(self, deployment: dict) -> tuple[PodTemplate, int]:
        """Extract the operator-owned parts of a deployment's pod template.

        Args:
            deployment: The deployment in its JSON form.

        Returns:
            The pod template and the index of the frpc container.
        """
        template = deployment.get("spec", {}).get("template", {})
        pod_spec = template.get("spec", {})
        containers = pod_spec.get("containers") or []
        if not containers:
            raise ResolutionError(f"Deployment {self.get_resource_key(deployment)} has no containers")
        index = self._container_index(containers)
        return (
            PodTemplate(
                volumes=list(pod_spec.get("volumes") or []),
                mounts=list(containers[index].get("volumeMounts") or []),
                annotations=dict(template.get("metadata", {}).get("annotations") or {}),
            ),
            index,
        )

    @staticmethod
    def pod_template_patch(template: PodTemplate, container_index: int, resource_version: str) -> list[dict]:
        """Build the JSON patch writing back a pod template.

        Only whole lists are written, at fixed paths; the resourceVersion makes
        the API server reject the patch if the deployment changed since it was read.
        """
        return [
            {"op": "replace", "path": "/metadata/resourceVersion", "value": resource_version},
            {"op": "add", "path": "/spec/template/spec/volumes", "value": template.volumes},
            {
                "op": "add",
                "path": f"/spec/template/spec/containers/{container_index}/volumeMounts",
                "value": template.mounts,
            },
            {"op": "add", "path": "/spec/template/metadata/annotations", "value": template.annotations},
        ]

    def update_pod_template(
        self,
        name: str,
        namespace: str,
        mutate: Callable[[PodTemplate], PodTemplate],
        attempts: int = UPDATE_ATTEMPTS,
    ) -> bool:
        """Apply a change to the frpc pod template with optimistic concurrency.

        The deployment is read, ``mutate`` computes the new template and the
        result is written with a resourceVersion precondition. A conflicting
        write by someone else restarts the cycle from a fresh read.

        Args:
            name: Name of the deployment.
            namespace: Namespace of the deployment.
            mutate: Function from the current to the desired template, called again after a conflict.
            attempts: How many read-modify-write cycles to try.

        Returns:
            True if the deployment was patched, False if it already matched.

        Raises:
            ResolutionError: If the deployment does not exist.
            ConflictError: If every attempt lost a race with another writer.
        """
        for attempt in range(1, attempts + 1):
            try:
                deployment = self.connection.to_dict(self.get_resource(name, namespace))
            except ApiException as e:
                if is_not_found(e):
                    raise ResolutionError(f"Deployment {namespace}/{name} not found") from e
                raise

            current, container_index = self.read_pod_template(deployment)
            desired = mutate(current)
            if desired == current:
                logger.debug(f"Pod template of Deployment {namespace}/{name} is up to date")
                return False

            body = self.pod_template_patch(desired, container_index, deployment["metadata"]["resourceVersion"])
            try:
                self.patch_resource(name, namespace, body, PATCH_JSON)
            except ApiException as e:
                if not is_conflict(e):
                    raise
                logger.warning(
                    f"Conflict updating pod template of Deployment {namespace}/{name} (attempt {attempt}/{attempts})"
                )
                continue

            logger.info(f"Updated pod template of Deployment {namespace}/{name}")
            return True

        raise ConflictError(f"Gave up updating Deployment {namespace}/{name} after {attempts} conflicting attempts")
