"""Controllers reconciling watched objects."""

from frp_operator.controllers.base import SourceController
from frp_operator.controllers.client import ClientController
from frp_operator.controllers.ingress import INGRESS_FINALIZER, IngressController
from frp_operator.controllers.service import SERVICE_FINALIZER, ServiceController

__all__ = [
    "INGRESS_FINALIZER",
    "SERVICE_FINALIZER",
    "ClientController",
    "IngressController",
    "ServiceController",
    "SourceController",
]
