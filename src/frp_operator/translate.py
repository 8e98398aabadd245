"""Translation of cluster objects into frpc configuration.

The functions in this module only read: they take ``kubernetes.client`` model
objects plus a read-only lookup collaborator and return the proxies an object
asks for. Translating the same input twice yields the same output.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Protocol

from kubernetes import client

from frp_operator.config import OperatorConfig
from frp_operator.exceptions import MalformedResourceError, ResolutionError
from frp_operator.frpc.config import (
    HTTPS2HTTP_PLUGIN,
    Auth,
    ClientConfig,
    LoadBalancer,
    Proxy,
    ProxyConfig,
    ProxyPlugin,
    ProxyType,
    Transport,
    WebServer,
)
from frp_operator.kubernetes.resources.clients import ClientSpec
from frp_operator.naming import FRAGMENT_GLOB, SecretRef, artifact_name, cert_dir

logger = logging.getLogger(__name__)

INGRESS_CLASS_ANNOTATION = "kubernetes.io/ingress.class"
# Resolved by frpc from the environment, which the Client's auth Secret populates
AUTH_TOKEN_TEMPLATE = "{{ .Envs.FRP_AUTH_TOKEN }}"
TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"

_FRP_PROTOCOLS = {"tcp": ProxyType.TCP, "udp": ProxyType.UDP}


class Lookups(Protocol):
    """Read-only view of the cluster used while translating."""

    def get_service(self, name: str, namespace: str) -> client.V1Service | None: ...

    def get_secret(self, name: str, namespace: str) -> client.V1Secret | None: ...

    def list_pods(self, namespace: str, selector: dict[str, str]) -> list[client.V1Pod]: ...


@dataclass
class Translation:
    """The proxies of one source object and the Secrets they need staged.

    ``warnings`` lists the parts of the object that were left out.
    """

    proxy_config: ProxyConfig
    secrets: dict[SecretRef, client.V1Secret] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def service_host(name: str, namespace: str, cluster_domain: str) -> str:
    return f"{name}.{namespace}.svc.{cluster_domain}"


def resolve_service_port(service: client.V1Service, port_ref: client.V1ServiceBackendPort) -> int:
    """Resolve an Ingress backend port against its Service.

    Args:
        service: The backend service.
        port_ref: The backend port, by name or by number.

    Returns:
        The service port number.

    Raises:
        ResolutionError: If the port is named but the service has no such port,
            or if neither a name nor a number is given.
    """
    key = f"{service.metadata.namespace}/{service.metadata.name}"
    if port_ref.name:
        for port in (service.spec.ports if service.spec else None) or []:
            if port.name == port_ref.name:
                return port.port
        raise ResolutionError(f"Service {key} has no port {port_ref.name}")
    if port_ref.number:
        return port_ref.number
    raise ResolutionError(f"Service {key}: backend port has no name or number")


def is_ingress_eligible(ingress: client.V1Ingress, ingress_class: str) -> bool:
    """Check whether an Ingress is handled by this operator.

    The legacy class annotation takes precedence over ``spec.ingressClassName``.
    """
    annotations = ingress.metadata.annotations or {}
    declared = annotations.get(INGRESS_CLASS_ANNOTATION)
    if declared is None and ingress.spec is not None:
        declared = ingress.spec.ingress_class_name
    return declared == ingress_class


def is_service_eligible(service: client.V1Service, load_balancer_class: str) -> bool:
    spec = service.spec
    return spec is not None and spec.type == "LoadBalancer" and spec.load_balancer_class == load_balancer_class


def _tls_hosts(ingress: client.V1Ingress) -> dict[str, str]:
    hosts = {}
    for tls in ingress.spec.tls or []:
        if not tls.secret_name:
            continue
        for host in tls.hosts or []:
            hosts.setdefault(host, tls.secret_name)
    return hosts


def _upgrade_to_https(proxy: Proxy, ref: SecretRef, cert_root: str) -> Proxy:
    directory = cert_dir(cert_root, ref)
    return Proxy(
        name=proxy.name,
        type=ProxyType.HTTPS,
        custom_domains=proxy.custom_domains,
        plugin=ProxyPlugin(
            type=HTTPS2HTTP_PLUGIN,
            local_addr=f"{proxy.local_ip}:{proxy.local_port}",
            crt_path=f"{directory}/{TLS_CERT_KEY}",
            key_path=f"{directory}/{TLS_KEY_KEY}",
            secret_name=ref.name,
            secret_namespace=ref.namespace,
        ),
    )


def proxy_config_from_ingress(
    ingress: client.V1Ingress, lookups: Lookups, cert_root: str, cluster_domain: str = "cluster.local"
) -> Translation:
    """Translate an Ingress into one http proxy per rule and path.

    Paths on a host listed in the TLS block are upgraded to https, terminated
    by frpc with the certificate of the referenced Secret. A Secret that does
    not exist yet leaves the proxy on plain http.

    Args:
        ingress: The Ingress to translate.
        lookups: Read-only access to Services and Secrets.
        cert_root: Directory under which certificates are staged for frpc.
        cluster_domain: Cluster DNS domain.

    Returns:
        The proxies and the Secrets to stage.

    Raises:
        MalformedResourceError: If rules, backends or ports are missing.
        ResolutionError: If a backend Service or its named port does not exist.
    """
    namespace = ingress.metadata.namespace or "default"
    name = ingress.metadata.name
    key = f"{namespace}/{name}"
    artifact = artifact_name("Ingress", namespace, name)

    if ingress.spec is None or not ingress.spec.rules:
        raise MalformedResourceError(f"Ingress {key} has no rules")

    proxies = []
    for rule in ingress.spec.rules:
        if rule.http is None or not rule.http.paths:
            raise MalformedResourceError(f"Ingress {key}: rule for host {rule.host or '*'} has no http paths")
        for path in rule.http.paths:
            backend = path.backend.service if path.backend else None
            if backend is None:
                raise MalformedResourceError(f"Ingress {key}: path {path.path or '/'} has no service backend")
            if backend.port is None:
                raise MalformedResourceError(f"Ingress {key}: backend {backend.name} has no port")

            service = lookups.get_service(backend.name, namespace)
            if service is None:
                raise ResolutionError(f"Ingress {key}: backend Service {namespace}/{backend.name} not found")
            port = resolve_service_port(service, backend.port)

            proxies.append(
                Proxy(
                    name=f"{artifact}-{len(proxies)}",
                    type=ProxyType.HTTP,
                    local_ip=service_host(backend.name, namespace, cluster_domain),
                    local_port=port,
                    custom_domains=[rule.host] if rule.host else None,
                    locations=[path.path] if path.path else None,
                )
            )

    tls_hosts = _tls_hosts(ingress)
    secrets: dict[SecretRef, client.V1Secret] = {}
    missing: set[SecretRef] = set()
    https_domains: set[str] = set()
    warnings = []
    translated = []
    for proxy in proxies:
        secret_name = next((tls_hosts[d] for d in proxy.custom_domains or [] if d in tls_hosts), None)
        if secret_name is None:
            translated.append(proxy)
            continue

        ref = SecretRef(namespace, secret_name)
        if ref not in secrets and ref not in missing:
            secret = lookups.get_secret(secret_name, namespace)
            if secret is None:
                logger.info(f"Ingress {key}: TLS not ready, Secret {ref} not found, serving plain http")
                missing.add(ref)
            else:
                secrets[ref] = secret
        if ref in missing:
            translated.append(proxy)
            continue

        # https proxies route by domain only, the first path of a host wins
        if https_domains.intersection(proxy.custom_domains):
            path = (proxy.locations or ["/"])[0]
            message = f"path {path} of {', '.join(proxy.custom_domains)} is not exposed, https routes by host only"
            logger.warning(f"Ingress {key}: {message}")
            warnings.append(message)
            continue
        https_domains.update(proxy.custom_domains)
        translated.append(_upgrade_to_https(proxy, ref, cert_root))

    return Translation(ProxyConfig(name=artifact, proxies=translated), secrets, warnings)


def _port_label(port: client.V1ServicePort) -> str:
    return port.name or str(port.port)


def _container_port(pod: client.V1Pod, name: str) -> int | None:
    for container in (pod.spec.containers if pod.spec else None) or []:
        for port in container.ports or []:
            if port.name == name:
                return port.container_port
    return None


def proxy_config_per_replica(service: client.V1Service, lookups: Lookups) -> Translation:
    """Translate a Service into one tcp proxy per port and backing pod.

    The proxies of one port share a load balancer group, so frps spreads the
    connections on the remote port across the replicas.

    Args:
        service: The Service to translate.
        lookups: Read-only access to the backing Pods.

    Returns:
        The proxies of the service; no Secrets are involved.
    """
    namespace = service.metadata.namespace or "default"
    name = service.metadata.name
    artifact = artifact_name("Service", namespace, name)

    selector = (service.spec.selector if service.spec else None) or {}
    pods = sorted(lookups.list_pods(namespace, selector), key=lambda pod: pod.metadata.name)

    proxies = []
    for port in (service.spec.ports if service.spec else None) or []:
        label = _port_label(port)
        if (port.protocol or "TCP").upper() != "TCP":
            logger.warning(f"Service {namespace}/{name}: skipping port {label}, only TCP is supported")
            continue

        group = f"{artifact}-{label}"
        target = port.target_port if port.target_port is not None else port.port
        index = 0
        for pod in pods:
            pod_ip = pod.status.pod_ip if pod.status else None
            if not pod_ip:
                continue
            if isinstance(target, str) and not target.isdigit():
                local_port = _container_port(pod, target)
                if local_port is None:
                    logger.warning(f"Service {namespace}/{name}: pod {pod.metadata.name} has no port {target}")
                    continue
            else:
                local_port = int(target)

            proxies.append(
                Proxy(
                    name=f"{artifact}-{label}-{index}",
                    type=ProxyType.TCP,
                    local_ip=pod_ip,
                    local_port=local_port,
                    remote_port=port.port,
                    load_balancer=LoadBalancer(group=group, group_key=group),
                )
            )
            index += 1

    return Translation(ProxyConfig(name=artifact, proxies=proxies))


def proxy_config_single_endpoint(service: client.V1Service, cluster_domain: str = "cluster.local") -> Translation:
    """Translate a Service into one proxy per port, pointing at the Service itself."""
    namespace = service.metadata.namespace or "default"
    name = service.metadata.name
    artifact = artifact_name("Service", namespace, name)
    host = service_host(name, namespace, cluster_domain)

    proxies = []
    for port in (service.spec.ports if service.spec else None) or []:
        label = _port_label(port)
        proxy_type = _FRP_PROTOCOLS.get((port.protocol or "TCP").lower())
        if proxy_type is None:
            logger.warning(f"Service {namespace}/{name}: skipping port {label}, unsupported protocol {port.protocol}")
            continue
        proxies.append(
            Proxy(
                name=f"{artifact}-{label}",
                type=proxy_type,
                local_ip=host,
                local_port=port.port,
                remote_port=port.port,
            )
        )

    return Translation(ProxyConfig(name=artifact, proxies=proxies))


def client_config_from_spec(spec: ClientSpec, config_root: str) -> ClientConfig:
    """Build the root configuration of the frpc Deployment of a Client.

    An inline token is written as is; a token Secret is referenced through the
    ``FRP_AUTH_TOKEN`` environment variable so that it never lands in a ConfigMap.
    """
    auth = None
    if spec.auth is not None:
        if spec.auth.token:
            auth = Auth(method="token", token=spec.auth.token)
        elif spec.auth.secret:
            auth = Auth(method="token", token=AUTH_TOKEN_TEMPLATE)

    return ClientConfig(
        server_addr=spec.server_addr,
        server_port=spec.server_port,
        auth=auth,
        webserver=WebServer(addr=spec.webserver_addr, port=spec.webserver_port) if spec.webserver_port else None,
        transport=Transport(protocol=spec.transport.protocol) if spec.transport and spec.transport.protocol else None,
        includes=[f"{config_root}/{FRAGMENT_GLOB}"],
    )


def client_config_from_settings(config: OperatorConfig) -> ClientConfig:
    """Build the root configuration of the frpc child process in agent mode."""
    return ClientConfig(
        server_addr=config.server_addr,
        server_port=config.server_port,
        auth=Auth(method="token", token=config.auth_token) if config.auth_token else None,
        webserver=(
            WebServer(addr=config.webserver_addr, port=config.webserver_port) if config.webserver_port else None
        ),
        transport=Transport(protocol=config.transport_protocol) if config.transport_protocol else None,
        includes=[f"{config.config_root}/{FRAGMENT_GLOB}"],
    )


def load_balancer_status(address: str, ports: list[tuple[int, str]]) -> dict:
    """Build the ``status.loadBalancer`` of an exposed object.

    Args:
        address: The frps address the object is reachable on.
        ports: ``(port, protocol)`` pairs exposed on that address.
    """
    try:
        ipaddress.ip_address(address)
        entry = {"ip": address}
    except ValueError:
        entry = {"hostname": address}
    if ports:
        entry["ports"] = [{"port": port, "protocol": protocol} for port, protocol in ports]
    return {"loadBalancer": {"ingress": [entry]}}


def ingress_status(address: str, proxy_config: ProxyConfig) -> dict:
    ports = [(80, "TCP")]
    if any(proxy.type == ProxyType.HTTPS for proxy in proxy_config.proxies):
        ports.append((443, "TCP"))
    return load_balancer_status(address, ports)


def service_status(address: str, service: client.V1Service, proxy_config: ProxyConfig) -> dict:
    exposed = {proxy.remote_port for proxy in proxy_config.proxies}
    ports = [
        (port.port, (port.protocol or "TCP").upper())
        for port in (service.spec.ports if service.spec else None) or []
        if port.port in exposed
    ]
    return load_balancer_status(address, ports)
