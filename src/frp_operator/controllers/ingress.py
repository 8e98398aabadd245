"""Controller exposing Ingresses through frp."""

import logging

from kubernetes import client

from frp_operator.appliers import TunnelTarget
from frp_operator.controllers.base import SourceController
from frp_operator.frpc.config import ProxyConfig
from frp_operator.kubernetes.resources.ingresses import IngressResource
from frp_operator.translate import Translation, ingress_status, is_ingress_eligible, proxy_config_from_ingress

logger = logging.getLogger(__name__)

INGRESS_FINALIZER = "frp-operator.io/ingress-finalizer"


class IngressController(SourceController):
    """Exposes the Ingresses of the operator's ingress class as http(s) proxies."""

    KIND = "Ingress"
    FINALIZER = INGRESS_FINALIZER

    @property
    def handler(self) -> IngressResource:
        return self.store.ingresses

    def is_eligible(self, resource: client.V1Ingress) -> bool:
        return is_ingress_eligible(resource, self.config.ingress_class)

    def translate(self, resource: client.V1Ingress) -> Translation:
        return proxy_config_from_ingress(resource, self.store, self.config.cert_root, self.config.cluster_domain)

    def desired_status(self, target: TunnelTarget, resource: client.V1Ingress, proxy_config: ProxyConfig) -> dict:
        return ingress_status(target.server_addr, proxy_config)
