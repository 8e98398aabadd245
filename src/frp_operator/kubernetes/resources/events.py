"""Kubernetes events handling module.

This module provides functions for creating events on the objects the
operator reconciles.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from kubernetes import client

from frp_operator.kubernetes.connection import KubernetesConnection

logger = logging.getLogger(__name__)

# Constants for event types
EVENT_TYPE_NORMAL = "Normal"
EVENT_TYPE_WARNING = "Warning"

# Constants for event reasons
EVENT_REASON_RECONCILED = "Reconciled"
EVENT_REASON_FAILED = "ReconcileFailed"
EVENT_REASON_CLEANED_UP = "CleanedUp"
EVENT_REASON_PARTIALLY_EXPOSED = "PartiallyExposed"

# Constants for event actions
EVENT_ACTION_APPLY = "Apply"
EVENT_ACTION_CLEANUP = "Cleanup"

# Component name for events
EVENT_COMPONENT = "frp-operator"


def create_reconciled_event(
    connection: KubernetesConnection,
    resource: Any,
    api_version: str,
    kind: str,
    message: str,
) -> None:
    """Create a Kubernetes event for a successful apply.

    Args:
        connection: The Kubernetes connection to use
        resource: The resource object that was reconciled
        api_version: API version of the resource
        kind: Resource kind
        message: Detailed message for the event
    """
    _create_event(
        connection=connection,
        resource=resource,
        api_version=api_version,
        kind=kind,
        event_type=EVENT_TYPE_NORMAL,
        reason=EVENT_REASON_RECONCILED,
        message=message,
        action=EVENT_ACTION_APPLY,
    )


def create_failure_event(
    connection: KubernetesConnection,
    resource: Any,
    api_version: str,
    kind: str,
    message: str,
    action: str = EVENT_ACTION_APPLY,
) -> None:
    """Create a Kubernetes warning event for a failed reconcile.

    Args:
        connection: The Kubernetes connection to use
        resource: The resource object that failed to reconcile
        api_version: API version of the resource
        kind: Resource kind
        message: Detailed message for the event
        action: Action that failed (Apply or Cleanup)
    """
    _create_event(
        connection=connection,
        resource=resource,
        api_version=api_version,
        kind=kind,
        event_type=EVENT_TYPE_WARNING,
        reason=EVENT_REASON_FAILED,
        message=message,
        action=action,
    )


def create_warning_event(
    connection: KubernetesConnection,
    resource: Any,
    api_version: str,
    kind: str,
    message: str,
) -> None:
    """Create a Kubernetes warning event for parts of a resource that were not exposed.

    Args:
        connection: The Kubernetes connection to use
        resource: The resource object that was reconciled
        api_version: API version of the resource
        kind: Resource kind
        message: Detailed message for the event
    """
    _create_event(
        connection=connection,
        resource=resource,
        api_version=api_version,
        kind=kind,
        event_type=EVENT_TYPE_WARNING,
        reason=EVENT_REASON_PARTIALLY_EXPOSED,
        message=message,
        action=EVENT_ACTION_APPLY,
    )


def create_cleanup_event(
    connection: KubernetesConnection,
    resource: Any,
    api_version: str,
    kind: str,
    message: str,
) -> None:
    """Create a Kubernetes event once the tunnel of a resource is torn down.

    Args:
        connection: The Kubernetes connection to use
        resource: The resource object that was cleaned up
        api_version: API version of the resource
        kind: Resource kind
        message: Detailed message for the event
    """
    _create_event(
        connection=connection,
        resource=resource,
        api_version=api_version,
        kind=kind,
        event_type=EVENT_TYPE_NORMAL,
        reason=EVENT_REASON_CLEANED_UP,
        message=message,
        action=EVENT_ACTION_CLEANUP,
    )


def _create_event(
    connection: KubernetesConnection,
    resource: Any,
    api_version: str,
    kind: str,
    event_type: str,
    reason: str,
    message: str,
    action: str,
) -> None:
    """Create a Kubernetes event for a resource operation.

    Args:
        connection: The Kubernetes connection to use
        resource: The resource object to create an event for
        api_version: API version of the resource
        kind: Resource kind
        event_type: Type of event (Normal or Warning)
        reason: Short reason for the event
        message: Detailed message for the event
        action: Action being performed (Apply or Cleanup)
    """
    name = ""
    namespace = ""
    try:
        # Get resource metadata
        uid = None

        if hasattr(resource, "metadata"):
            metadata = resource.metadata
            name = metadata.name if hasattr(metadata, "name") else ""
            namespace = metadata.namespace if hasattr(metadata, "namespace") else ""
            uid = metadata.uid if hasattr(metadata, "uid") else None
        elif isinstance(resource, dict) and "metadata" in resource:
            metadata = resource["metadata"]
            name = metadata.get("name", "")
            namespace = metadata.get("namespace", "")
            uid = metadata.get("uid")

        if not name or not namespace:
            logger.warning(f"Cannot create event for {kind} without name and namespace")
            return

        now = datetime.now(UTC)

        # Event notes are limited to 1kB
        body = client.EventsV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{name}-", namespace=namespace),
            reason=reason,
            note=message[:1024],
            type=event_type,
            reporting_controller=EVENT_COMPONENT,
            reporting_instance=connection.instance_id,
            action=action,
            regarding=client.V1ObjectReference(
                api_version=api_version, kind=kind, name=name, namespace=namespace, uid=uid
            ),
            event_time=now,
        )

        connection.events_v1_api.create_namespaced_event(namespace=namespace, body=body)
        logger.debug(f"Created event for {kind} {namespace}/{name}: {reason}")

    except Exception as e:
        logger.warning(f"Failed to create event for {kind} {namespace}/{name}: {e}")
