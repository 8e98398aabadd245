"""Finalizer-gated lifecycle of exposed objects.

Every Ingress or Service handled by the operator carries a finalizer while its
proxies exist, so that deleting the object first tears the proxies down.
"""

import abc
import logging
from typing import Any

from frp_operator.appliers import ConfigApplier, TunnelTarget
from frp_operator.config import OperatorConfig
from frp_operator.exceptions import ResolutionError
from frp_operator.frpc.config import ProxyConfig
from frp_operator.kubernetes import KubernetesStore
from frp_operator.kubernetes.resources.events import (
    EVENT_ACTION_APPLY,
    EVENT_ACTION_CLEANUP,
    create_cleanup_event,
    create_failure_event,
    create_reconciled_event,
    create_warning_event,
)
from frp_operator.kubernetes.resources.ingresses import IngressResource
from frp_operator.kubernetes.resources.services import ServiceResource
from frp_operator.naming import artifact_name
from frp_operator.staging import SecretStager
from frp_operator.translate import Translation

logger = logging.getLogger(__name__)


class SourceController(abc.ABC):
    """Reconciles one kind of exposed object into proxies.

    The state of an object decides what happens:

    - gone: nothing, the key is forgotten;
    - deletion requested with our finalizer: clean up, then drop the finalizer;
    - not handled by this operator: clean up and drop the finalizer if it is
      still there, otherwise nothing;
    - otherwise: ensure the finalizer, then apply the proxies.
    """

    KIND: str
    FINALIZER: str

    def __init__(
        self,
        store: KubernetesStore,
        config: OperatorConfig,
        applier: ConfigApplier,
        stager: SecretStager,
    ):
        """Initialize the controller.

        Args:
            store: Access to the Kubernetes API.
            config: The operator configuration.
            applier: Applies proxy configurations to the tunnel client.
            stager: Stages TLS material for the tunnel client.
        """
        self.store = store
        self.config = config
        self.applier = applier
        self.stager = stager

    @property
    @abc.abstractmethod
    def handler(self) -> IngressResource | ServiceResource:
        """The resource handler of the reconciled kind."""
        pass

    @abc.abstractmethod
    def is_eligible(self, resource: Any) -> bool:
        """Whether the object asks to be exposed by this operator."""
        pass

    @abc.abstractmethod
    def translate(self, resource: Any) -> Translation:
        """Translate the object into its proxies."""
        pass

    @abc.abstractmethod
    def desired_status(self, target: TunnelTarget, resource: Any, proxy_config: ProxyConfig) -> dict:
        """The status to report once the proxies are applied."""
        pass

    def artifact(self, resource: Any) -> str:
        return artifact_name(
            self.KIND, self.handler.get_resource_namespace(resource), self.handler.get_resource_name(resource)
        )

    def reconcile(self, namespace: str, name: str) -> float | None:
        """Converge one object.

        Args:
            namespace: Namespace of the object.
            name: Name of the object.

        Returns:
            Seconds until the object should be reconciled again, or None to forget it.
        """
        resource = self.handler.get_resource_or_none(name, namespace)
        if resource is None:
            logger.debug(f"{self.KIND} {namespace}/{name} is gone")
            return None

        if self.handler.is_deleting(resource):
            if self.handler.has_finalizer(resource, self.FINALIZER):
                self._finalize(resource)
            return None

        if not self.is_eligible(resource):
            if self.handler.has_finalizer(resource, self.FINALIZER):
                logger.info(f"{self.KIND} {namespace}/{name} is no longer handled, removing its proxies")
                self._finalize(resource)
            return self.config.idle_interval

        resource = self.handler.add_finalizer(resource, self.FINALIZER)
        try:
            self.apply(resource)
        except Exception as e:
            create_failure_event(
                self.store.connection,
                resource,
                self.handler.RESOURCE_API_VERSION,
                self.KIND,
                f"Failed to apply proxies: {e}",
                EVENT_ACTION_APPLY,
            )
            raise
        return self.config.reconciliation_interval

    def apply(self, resource: Any) -> None:
        """Apply the proxies of an object and report its external address.

        Any failure aborts before the status is written.
        """
        key = self.handler.get_resource_key(resource)
        target = self.applier.resolve_target()
        translation = self.translate(resource)
        proxy_config = translation.proxy_config

        with self.stager.lock:
            self.stager.stage(target, translation.secrets)
            changed = self.applier.apply(target, proxy_config)
            self.stager.prune(target, self.applier.referenced_secrets(target))

        desired = self.desired_status(target, resource, proxy_config)
        current = (self.store.connection.to_dict(resource) or {}).get("status") or {}
        if current.get("loadBalancer") != desired["loadBalancer"]:
            self.handler.patch_status(
                self.handler.get_resource_name(resource),
                self.handler.get_resource_namespace(resource),
                {"status": desired},
            )
            logger.info(f"Updated status of {self.KIND} {key}")

        if changed:
            logger.info(f"Applied {len(proxy_config.proxies)} proxies for {self.KIND} {key}")
            create_reconciled_event(
                self.store.connection,
                resource,
                self.handler.RESOURCE_API_VERSION,
                self.KIND,
                f"Exposed through frps at {target.server_addr} with {len(proxy_config.proxies)} proxies",
            )
            if translation.warnings:
                create_warning_event(
                    self.store.connection,
                    resource,
                    self.handler.RESOURCE_API_VERSION,
                    self.KIND,
                    "; ".join(translation.warnings),
                )

    def cleanup(self, resource: Any) -> None:
        """Remove the proxies of an object. Safe to run more than once."""
        key = self.handler.get_resource_key(resource)
        try:
            target = self.applier.resolve_target()
        except ResolutionError as e:
            logger.info(f"No tunnel client to clean up {self.KIND} {key} from: {e}")
            return

        with self.stager.lock:
            self.applier.remove(target, self.artifact(resource))
            self.stager.prune(target, self.applier.referenced_secrets(target))
        logger.info(f"Removed proxies of {self.KIND} {key}")

    def _finalize(self, resource: Any) -> None:
        try:
            self.cleanup(resource)
        except Exception as e:
            create_failure_event(
                self.store.connection,
                resource,
                self.handler.RESOURCE_API_VERSION,
                self.KIND,
                f"Failed to remove proxies: {e}",
                EVENT_ACTION_CLEANUP,
            )
            raise
        self.handler.remove_finalizer(resource, self.FINALIZER)
        create_cleanup_event(
            self.store.connection,
            resource,
            self.handler.RESOURCE_API_VERSION,
            self.KIND,
            "Proxies removed",
        )
