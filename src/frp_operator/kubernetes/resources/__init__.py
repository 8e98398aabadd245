"""Resources package for Kubernetes resource handlers.

This package contains specialized handlers for different Kubernetes resource types.
"""

from frp_operator.kubernetes.resources.clients import ClientResource, ClientSpec
from frp_operator.kubernetes.resources.configmaps import ConfigMapResource
from frp_operator.kubernetes.resources.deployments import DeploymentResource
from frp_operator.kubernetes.resources.events import (
    create_cleanup_event,
    create_failure_event,
    create_reconciled_event,
)
from frp_operator.kubernetes.resources.ingresses import IngressResource
from frp_operator.kubernetes.resources.pods import PodResource
from frp_operator.kubernetes.resources.secrets import SecretResource
from frp_operator.kubernetes.resources.services import ServiceResource

__all__ = [
    "ClientResource",
    "ClientSpec",
    "ConfigMapResource",
    "DeploymentResource",
    "IngressResource",
    "PodResource",
    "SecretResource",
    "ServiceResource",
    "create_cleanup_event",
    "create_failure_event",
    "create_reconciled_event",
]
