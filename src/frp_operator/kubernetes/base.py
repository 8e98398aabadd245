"""Base module for Kubernetes resources.

This module provides the base class shared by all resource handlers. A handler
wraps one kind of object and gives the rest of the operator a uniform
get/list/patch/delete/watch surface, plus finalizer handling.
"""

import abc
import logging
from collections.abc import Callable, Iterator
from typing import Any, ClassVar, Generic, TypeVar

from kubernetes.client.exceptions import ApiException

from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)

# Field manager used for every write
FIELD_MANAGER = "frp-operator"

# Labels carried by every object the operator creates
PART_OF_LABEL = "app.kubernetes.io/part-of"
NAME_LABEL = "app.kubernetes.io/name"
COMPONENT_LABEL = "app.kubernetes.io/component"
OPERATOR_LABELS = {PART_OF_LABEL: "frp-operator", NAME_LABEL: "frpc"}

# Annotations written by the operator
SOURCE_ANNOTATION = "frp-operator.io/source"
TLS_SECRETS_ANNOTATION = "frp-operator.io/tls-secrets"

# Patch content types
PATCH_APPLY = "application/apply-patch+yaml"
PATCH_JSON = "application/json-patch+json"
PATCH_MERGE = "application/merge-patch+json"

# Type variable for resource types
T = TypeVar("T")


def is_not_found(error: ApiException) -> bool:
    return error.status == 404


def is_conflict(error: ApiException) -> bool:
    return error.status == 409


class KubernetesResource(Generic[T], abc.ABC):
    """Base class for all Kubernetes resource handlers.

    Objects are either API model instances (built-in kinds) or plain
    dictionaries (custom resources); the metadata accessors handle both.
    """

    # Resource type specific constants
    RESOURCE_API_VERSION: ClassVar[str]
    RESOURCE_KIND: ClassVar[str]
    # Names of the API calls used for listing and watching
    LIST_NAMESPACED_CALL: ClassVar[str]
    LIST_ALL_CALL: ClassVar[str]

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        self.connection = connection
        self.namespace = namespace
        self.api: Any = None

    def list_namespaced_resources(self, namespace: str, **kwargs) -> Any:
        """List resources in a specific namespace.

        Args:
            namespace: The namespace to list resources in.
            **kwargs: Additional arguments to pass to the API call.

        Returns:
            The API response containing the list of resources.
        """
        return getattr(self.api, self.LIST_NAMESPACED_CALL)(namespace, **kwargs)

    def list_all_namespaces_resources(self, **kwargs) -> Any:
        """List resources across all namespaces.

        Args:
            **kwargs: Additional arguments to pass to the API call.

        Returns:
            The API response containing the list of resources.
        """
        return getattr(self.api, self.LIST_ALL_CALL)(**kwargs)

    def watch_function(self, namespace: str | None = None) -> tuple[Callable, dict[str, Any]]:
        """Return the list call and its arguments to stream watch events from.

        The raw API method is returned (not a wrapper) so that the watch can
        deserialize events into the right model type.

        Args:
            namespace: Namespace to watch. If None, use the handler's namespace.
        """
        ns = namespace or self.namespace
        if ns:
            return getattr(self.api, self.LIST_NAMESPACED_CALL), {"namespace": ns}
        return getattr(self.api, self.LIST_ALL_CALL), {}

    def iter_resources(
        self, namespace: str | None = None, batch_size: int = 100, label_selector: str | None = None
    ) -> Iterator[T]:
        """Iterate over all resources in a namespace or across all namespaces.

        Uses pagination to fetch resources in batches and yield them one by one
        to limit memory usage.

        Args:
            namespace: Namespace to get resources from. If None, use the handler's namespace.
            batch_size: Number of resources to fetch per API call.
            label_selector: Optional label selector to filter resources.

        Yields:
            Resources, one at a time.
        """
        ns = namespace or self.namespace
        continue_token = None
        kwargs = {"label_selector": label_selector} if label_selector else {}

        try:
            while True:
                if ns:
                    result = self.list_namespaced_resources(ns, limit=batch_size, _continue=continue_token, **kwargs)
                else:
                    result = self.list_all_namespaces_resources(limit=batch_size, _continue=continue_token, **kwargs)

                if isinstance(result, dict):
                    yield from result.get("items", [])
                    continue_token = result.get("metadata", {}).get("continue")
                else:
                    yield from result.items
                    continue_token = result.metadata._continue
                if not continue_token:
                    break
        except ApiException as e:
            logger.error(f"Error listing {self.RESOURCE_KIND}s: {e.status} {e.reason}")
            raise

    @abc.abstractmethod
    def get_resource(self, name: str, namespace: str) -> T:
        """Get a specific resource by name.

        Args:
            name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            The resource object.
        """
        pass

    @abc.abstractmethod
    def patch_resource(self, name: str, namespace: str, body: Any, content_type: str = PATCH_MERGE, **kwargs) -> T:
        """Patch a specific resource with the given body.

        Args:
            name: Name of the resource.
            namespace: Namespace of the resource.
            body: The patch body to apply.
            content_type: One of PATCH_APPLY, PATCH_JSON or PATCH_MERGE.
            **kwargs: Additional arguments to pass to the API call.

        Returns:
            The patched resource.
        """
        pass

    @abc.abstractmethod
    def delete_resource(self, name: str, namespace: str) -> None:
        """Delete a specific resource.

        Args:
            name: Name of the resource.
            namespace: Namespace of the resource.
        """
        pass

    def get_resource_or_none(self, name: str, namespace: str) -> T | None:
        """Get a resource, returning None if it does not exist."""
        try:
            return self.get_resource(name, namespace)
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def apply_resource(self, body: dict) -> T:
        """Server-side apply a full object owned by the operator.

        Applying the same body twice is a no-op on the server.

        Args:
            body: The complete object, including apiVersion, kind and metadata.
        """
        name = body["metadata"]["name"]
        namespace = body["metadata"]["namespace"]
        logger.debug(f"Applying {self.RESOURCE_KIND} {namespace}/{name}")
        return self.patch_resource(name, namespace, body, PATCH_APPLY, field_manager=FIELD_MANAGER, force=True)

    def delete_resource_if_exists(self, name: str, namespace: str) -> bool:
        """Delete a resource, treating an already absent resource as success.

        Returns:
            True if something was deleted.
        """
        try:
            self.delete_resource(name, namespace)
        except ApiException as e:
            if is_not_found(e):
                logger.debug(f"{self.RESOURCE_KIND} {namespace}/{name} already gone")
                return False
            raise
        logger.info(f"Deleted {self.RESOURCE_KIND} {namespace}/{name}")
        return True

    def _metadata_field(self, resource: T, snake: str, camel: str) -> Any:
        if isinstance(resource, dict):
            return resource.get("metadata", {}).get(camel)
        return getattr(resource.metadata, snake, None)

    def get_resource_key(self, resource: T) -> str:
        """Get a unique key for a resource.

        Args:
            resource: The resource to get the key for.

        Returns:
            A string that uniquely identifies the resource.
        """
        return f"{self.get_resource_namespace(resource)}/{self.get_resource_name(resource)}"

    def get_resource_name(self, resource: T) -> str:
        return self._metadata_field(resource, "name", "name")

    def get_resource_namespace(self, resource: T) -> str:
        return self._metadata_field(resource, "namespace", "namespace") or "default"

    def get_resource_version(self, resource: T) -> str | None:
        return self._metadata_field(resource, "resource_version", "resourceVersion")

    def get_uid(self, resource: T) -> str | None:
        return self._metadata_field(resource, "uid", "uid")

    def get_finalizers(self, resource: T) -> list[str]:
        return list(self._metadata_field(resource, "finalizers", "finalizers") or [])

    def get_labels(self, resource: T) -> dict[str, str]:
        return dict(self._metadata_field(resource, "labels", "labels") or {})

    def get_annotations(self, resource: T) -> dict[str, str]:
        return dict(self._metadata_field(resource, "annotations", "annotations") or {})

    def is_deleting(self, resource: T) -> bool:
        return self._metadata_field(resource, "deletion_timestamp", "deletionTimestamp") is not None

    def has_finalizer(self, resource: T, finalizer: str) -> bool:
        return finalizer in self.get_finalizers(resource)

    def _patch_finalizers(self, resource: T, finalizers: list[str]) -> T:
        # A merge patch carrying resourceVersion fails with 409 if the object moved on
        body = {
            "metadata": {
                "finalizers": finalizers,
                "resourceVersion": self.get_resource_version(resource),
            }
        }
        return self.patch_resource(
            self.get_resource_name(resource), self.get_resource_namespace(resource), body, PATCH_MERGE
        )

    def add_finalizer(self, resource: T, finalizer: str) -> T:
        """Add a finalizer to a resource.

        Args:
            resource: The resource to protect.
            finalizer: The finalizer to add.

        Returns:
            The updated resource.
        """
        finalizers = self.get_finalizers(resource)
        if finalizer in finalizers:
            return resource
        updated = self._patch_finalizers(resource, finalizers + [finalizer])
        logger.debug(f"Added finalizer {finalizer} to {self.RESOURCE_KIND} {self.get_resource_key(resource)}")
        return updated

    def remove_finalizer(self, resource: T, finalizer: str) -> None:
        """Remove a finalizer from a resource, letting a pending deletion complete.

        Args:
            resource: The resource to release.
            finalizer: The finalizer to remove.
        """
        finalizers = self.get_finalizers(resource)
        if finalizer not in finalizers:
            return
        try:
            self._patch_finalizers(resource, [f for f in finalizers if f != finalizer])
        except ApiException as e:
            if is_not_found(e):
                return
            raise
        logger.debug(f"Removed finalizer {finalizer} from {self.RESOURCE_KIND} {self.get_resource_key(resource)}")
