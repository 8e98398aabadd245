"""Convergence of proxy configurations onto the tunnel client.

A ``ConfigApplier`` turns one ``ProxyConfig`` into a config artifact the
running frpc picks up. In cluster mode the artifact is a ConfigMap mounted
into the frpc Deployment; in agent mode it is a file next to the root
configuration of the frpc child process.
"""

import abc
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from frp_operator.config import OperatorConfig
from frp_operator.exceptions import ResolutionError
from frp_operator.frpc.config import ProxyConfig
from frp_operator.frpc.process import FrpcProcess
from frp_operator.kubernetes import KubernetesStore
from frp_operator.kubernetes.base import (
    COMPONENT_LABEL,
    OPERATOR_LABELS,
    PART_OF_LABEL,
    TLS_SECRETS_ANNOTATION,
)
from frp_operator.naming import (
    FRAGMENT_GLOB,
    SecretRef,
    artifact_from_fragment,
    config_map_name,
    content_hash,
    fragment_filename,
    secret_ref_from_cert_path,
)
from frp_operator.volumes import PodTemplate, prune_certificates, with_artifact, without_artifact

logger = logging.getLogger(__name__)

# Name of the frpc Deployment managed for a Client
FRPC_DEPLOYMENT = "frpc"
PROXY_CONFIG_COMPONENT = "proxy-config"


@dataclass(frozen=True)
class TunnelTarget:
    """The frpc instance proxies are applied to.

    Attributes:
        server_addr: Address of frps, reported as the external address of exposed objects.
        namespace: Namespace of the frpc Deployment (cluster mode).
        owner_reference: Owner reference of the Client resource (cluster mode).
        deployment: Name of the frpc Deployment (cluster mode).
    """

    server_addr: str
    namespace: str | None = None
    owner_reference: dict[str, Any] | None = None
    deployment: str | None = None


class ConfigApplier(abc.ABC):
    """Applies proxy configurations to the tunnel client."""

    @abc.abstractmethod
    def resolve_target(self) -> TunnelTarget:
        """Find the tunnel client.

        Raises:
            ResolutionError: If there is no tunnel client yet.
        """
        pass

    @abc.abstractmethod
    def apply(self, target: TunnelTarget, proxy_config: ProxyConfig) -> bool:
        """Apply a proxy configuration.

        Returns:
            True if anything changed.
        """
        pass

    @abc.abstractmethod
    def remove(self, target: TunnelTarget, artifact: str) -> None:
        """Remove the configuration artifact of one source object.

        Removing an artifact that does not exist is not an error.
        """
        pass

    @abc.abstractmethod
    def referenced_secrets(self, target: TunnelTarget, exclude: str | None = None) -> set[SecretRef]:
        """Return the Secrets referenced by the applied artifacts.

        Args:
            target: The tunnel client.
            exclude: Artifact to leave out, e.g. one being removed.
        """
        pass


class ClusterConfigApplier(ConfigApplier):
    """Applies proxies as ConfigMaps mounted into the frpc Deployment of a Client."""

    def __init__(self, store: KubernetesStore, config: OperatorConfig):
        self.store = store
        self.config = config

    def resolve_target(self) -> TunnelTarget:
        client_resource = self.store.clients.first()
        if client_resource is None:
            raise ResolutionError("No Client resource found")

        key = self.store.clients.get_resource_key(client_resource)
        try:
            spec = self.store.clients.get_spec(client_resource)
        except ValidationError as e:
            raise ResolutionError(f"Client {key} has an invalid spec: {e}") from e

        return TunnelTarget(
            server_addr=spec.server_addr,
            namespace=self.store.clients.get_resource_namespace(client_resource),
            owner_reference=self.store.clients.owner_reference(client_resource),
            deployment=FRPC_DEPLOYMENT,
        )

    def _config_map(self, target: TunnelTarget, proxy_config: ProxyConfig, text: str) -> dict:
        refs = ",".join(sorted(str(ref) for ref in proxy_config.secret_refs()))
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": config_map_name(proxy_config.name),
                "namespace": target.namespace,
                "labels": {**OPERATOR_LABELS, COMPONENT_LABEL: PROXY_CONFIG_COMPONENT},
                "annotations": {TLS_SECRETS_ANNOTATION: refs},
                "ownerReferences": [target.owner_reference],
            },
            "data": {fragment_filename(proxy_config.name): text},
        }

    def apply(self, target: TunnelTarget, proxy_config: ProxyConfig) -> bool:
        artifact = proxy_config.name
        text = proxy_config.to_yaml()
        logger.debug(f"Proxy config {artifact}:\n{text}")

        self.store.config_maps.apply_resource(self._config_map(target, proxy_config, text))

        refs = proxy_config.secret_refs()

        def mutate(template: PodTemplate) -> PodTemplate:
            template = with_artifact(
                template, artifact, content_hash(text), refs, self.config.config_root, self.config.cert_root
            )
            # Listed after the template was read, so any certificate mounted in it
            # has the ConfigMap of its fragment in the listing
            return prune_certificates(template, self.referenced_secrets(target) | refs)

        return self.store.deployments.update_pod_template(target.deployment, target.namespace, mutate)

    def remove(self, target: TunnelTarget, artifact: str) -> None:
        def mutate(template: PodTemplate) -> PodTemplate:
            return prune_certificates(
                without_artifact(template, artifact), self.referenced_secrets(target, exclude=artifact)
            )

        try:
            self.store.deployments.update_pod_template(target.deployment, target.namespace, mutate)
        except ResolutionError as e:
            logger.info(f"Nothing to unmount for {artifact}: {e}")

        self.store.config_maps.delete_resource_if_exists(config_map_name(artifact), target.namespace)

    def referenced_secrets(self, target: TunnelTarget, exclude: str | None = None) -> set[SecretRef]:
        excluded = config_map_name(exclude) if exclude else None
        selector = f"{PART_OF_LABEL}={OPERATOR_LABELS[PART_OF_LABEL]},{COMPONENT_LABEL}={PROXY_CONFIG_COMPONENT}"

        refs = set()
        for config_map in self.store.config_maps.iter_resources(namespace=target.namespace, label_selector=selector):
            if self.store.config_maps.get_resource_name(config_map) == excluded:
                continue
            annotation = self.store.config_maps.get_annotations(config_map).get(TLS_SECRETS_ANNOTATION, "")
            for value in annotation.split(","):
                ref = SecretRef.parse(value)
                if ref is not None:
                    refs.add(ref)
        return refs


class FileConfigApplier(ConfigApplier):
    """Applies proxies as fragment files included by the frpc child process."""

    def __init__(self, config: OperatorConfig, process: FrpcProcess | None = None):
        """Initialize the applier.

        Args:
            config: The operator configuration.
            process: The running frpc, reloaded after every change. None only writes files.
        """
        self.config = config
        self.process = process
        self.root = Path(config.config_root)

    def resolve_target(self) -> TunnelTarget:
        return TunnelTarget(server_addr=self.config.server_addr)

    def _reload(self) -> None:
        if self.process is not None:
            self.process.reload()

    def apply(self, target: TunnelTarget, proxy_config: ProxyConfig) -> bool:
        path = self.root / fragment_filename(proxy_config.name)
        text = proxy_config.to_yaml()
        if path.is_file() and path.read_text() == text:
            logger.debug(f"Fragment {path} is up to date")
            return False

        self.root.mkdir(parents=True, exist_ok=True)
        # Write then rename so frpc never includes a half-written fragment
        fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".proxy-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(text)
            os.replace(tmp_path, path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.info(f"Wrote fragment {path}")

        self._reload()
        return True

    def remove(self, target: TunnelTarget, artifact: str) -> None:
        path = self.root / fragment_filename(artifact)
        if not path.exists():
            logger.debug(f"Fragment {path} already gone")
            return
        path.unlink()
        logger.info(f"Removed fragment {path}")
        self._reload()

    def referenced_secrets(self, target: TunnelTarget, exclude: str | None = None) -> set[SecretRef]:
        refs = set()
        for path in sorted(self.root.glob(FRAGMENT_GLOB)):
            artifact = artifact_from_fragment(path.name)
            if artifact is None or artifact == exclude:
                continue
            try:
                proxy_config = ProxyConfig.from_yaml(artifact, path.read_text())
            except (OSError, ValueError, yaml.YAMLError) as e:
                logger.warning(f"Ignoring unreadable fragment {path}: {e}")
                continue
            for proxy in proxy_config.proxies:
                if proxy.plugin is None or not proxy.plugin.crt_path:
                    continue
                ref = secret_ref_from_cert_path(self.config.cert_root, proxy.plugin.crt_path)
                if ref is not None:
                    refs.add(ref)
        return refs
