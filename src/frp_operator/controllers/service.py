"""Controller exposing LoadBalancer Services through frp."""

import logging

from kubernetes import client

from frp_operator.appliers import TunnelTarget
from frp_operator.config import ServiceStrategy
from frp_operator.controllers.base import SourceController
from frp_operator.frpc.config import ProxyConfig
from frp_operator.kubernetes.resources.services import ServiceResource
from frp_operator.translate import (
    Translation,
    is_service_eligible,
    proxy_config_per_replica,
    proxy_config_single_endpoint,
    service_status,
)

logger = logging.getLogger(__name__)

SERVICE_FINALIZER = "frp-operator.io/service-finalizer"


class ServiceController(SourceController):
    """Exposes the Services of the operator's load balancer class as tcp/udp proxies.

    With the per-replica strategy every backing pod gets its own proxy, so the
    Service is also reconciled whenever one of its pods changes.
    """

    KIND = "Service"
    FINALIZER = SERVICE_FINALIZER

    @property
    def handler(self) -> ServiceResource:
        return self.store.services

    @property
    def per_replica(self) -> bool:
        return self.config.effective_service_strategy == ServiceStrategy.PER_REPLICA

    def is_eligible(self, resource: client.V1Service) -> bool:
        return is_service_eligible(resource, self.config.load_balancer_class)

    def translate(self, resource: client.V1Service) -> Translation:
        if self.per_replica:
            return proxy_config_per_replica(resource, self.store)
        return proxy_config_single_endpoint(resource, self.config.cluster_domain)

    def desired_status(self, target: TunnelTarget, resource: client.V1Service, proxy_config: ProxyConfig) -> dict:
        return service_status(target.server_addr, resource, proxy_config)

    def services_for_pod(self, pod: client.V1Pod) -> list[tuple[str, str]]:
        """Map a pod to the handled Services selecting it.

        Args:
            pod: The pod that changed.

        Returns:
            ``(namespace, name)`` of every eligible Service whose selector matches the pod.
        """
        labels = pod.metadata.labels or {}
        namespace = pod.metadata.namespace
        keys = []
        for service in self.handler.iter_resources(namespace=namespace):
            if self.is_eligible(service) and self.handler.selects(service, labels):
                keys.append((namespace, service.metadata.name))
        return keys
