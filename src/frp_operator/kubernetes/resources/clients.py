"""Client custom resource handling module.

A ``Client`` (``frp-operator.io/v1``) describes one frpc instance: the frps
server to connect to, the optional admin webserver and how to authenticate.
Custom objects come back from the API as plain dictionaries.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from frp_operator.kubernetes.base import PATCH_MERGE, KubernetesResource
from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)

GROUP = "frp-operator.io"
VERSION = "v1"
PLURAL = "clients"


class SpecModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthSpec(SpecModel):
    """Authentication against frps, by inline token or by a Secret.

    The Secret is exposed to frpc as environment, so it must carry a
    ``FRP_AUTH_TOKEN`` key.
    """

    secret: str | None = None
    token: str | None = None


class TransportSpec(SpecModel):
    protocol: str | None = None


class ClientSpec(SpecModel):
    server_addr: str = Field(min_length=1)
    server_port: int = Field(ge=1, le=65535)
    webserver_addr: str | None = None
    webserver_port: int | None = Field(default=None, ge=1, le=65535)
    auth: AuthSpec | None = None
    transport: TransportSpec | None = None


class ClientResource(KubernetesResource[dict]):
    """Handler for Client custom resources."""

    # Resource type specific constants
    RESOURCE_API_VERSION = f"{GROUP}/{VERSION}"
    RESOURCE_KIND = "Client"
    LIST_NAMESPACED_CALL = "list_namespaced_custom_object"
    LIST_ALL_CALL = "list_cluster_custom_object"

    def __init__(self, connection: KubernetesConnection, namespace: str | None = None):
        """Initialize the Client resource handler.

        Args:
            connection: The Kubernetes connection to use
            namespace: Optional namespace to filter resources. If None, all namespaces will be used.
        """
        super().__init__(connection, namespace)
        # API client for custom objects
        self.api = connection.custom_objects_api

    def list_namespaced_resources(self, namespace: str, **kwargs) -> dict:
        return self.api.list_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, **kwargs)

    def list_all_namespaces_resources(self, **kwargs) -> dict:
        return self.api.list_cluster_custom_object(GROUP, VERSION, PLURAL, **kwargs)

    def watch_function(self, namespace: str | None = None):
        ns = namespace or self.namespace
        if ns:
            return self.api.list_namespaced_custom_object, {
                "group": GROUP,
                "version": VERSION,
                "namespace": ns,
                "plural": PLURAL,
            }
        return self.api.list_cluster_custom_object, {"group": GROUP, "version": VERSION, "plural": PLURAL}

    def get_resource(self, name: str, namespace: str) -> dict:
        """Get a specific client by name.

        Args:
            name: Name of the client.
            namespace: Namespace of the client.

        Returns:
            The client object.
        """
        return self.api.get_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, name)

    def patch_resource(self, name: str, namespace: str, body, content_type: str = PATCH_MERGE, **kwargs) -> dict:
        """Patch a client with the given body.

        Args:
            name: Name of the client.
            namespace: Namespace of the client.
            body: The patch body to apply.
            content_type: Patch content type.
        """
        return self.api.patch_namespaced_custom_object(
            GROUP, VERSION, namespace, PLURAL, name, body, _content_type=content_type, **kwargs
        )

    def delete_resource(self, name: str, namespace: str) -> None:
        self.api.delete_namespaced_custom_object(GROUP, VERSION, namespace, PLURAL, name)

    def first(self) -> dict | None:
        """Return the client the proxies are attached to.

        One frpc instance serves the whole cluster; if several Client objects
        exist the first one listed wins.
        """
        for resource in self.iter_resources(batch_size=1):
            return resource
        return None

    def get_spec(self, resource: dict) -> ClientSpec:
        return ClientSpec.model_validate(resource.get("spec") or {})

    def owner_reference(self, resource: dict) -> dict[str, Any]:
        """Owner reference making a child object garbage collected with the client."""
        return {
            "apiVersion": self.RESOURCE_API_VERSION,
            "kind": self.RESOURCE_KIND,
            "name": self.get_resource_name(resource),
            "uid": self.get_uid(resource),
            "controller": True,
            "blockOwnerDeletion": True,
        }
