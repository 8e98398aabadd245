"""frpc configuration models.

These models mirror the frpc YAML configuration format. Field names are
snake_case in Python and camelCase on the wire.
"""

from enum import Enum
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from frp_operator.naming import SecretRef

# Plugin terminating TLS in frpc and forwarding plain HTTP to localAddr
HTTPS2HTTP_PLUGIN = "https2http"


class ProxyType(str, Enum):
    """Proxy type enumeration."""

    HTTP = "http"
    HTTPS = "https"
    TCP = "tcp"
    UDP = "udp"


class FrpcModel(BaseModel):
    """Base model for everything that ends up in an frpc configuration file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation, leaving out unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)

    def to_yaml(self) -> str:
        """Serialize to the frpc YAML format."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


class LoadBalancer(FrpcModel):
    group: str
    group_key: str


class ProxyTransport(FrpcModel):
    proxy_protocol_version: str | None = None


class Transport(FrpcModel):
    protocol: str | None = None


class Auth(FrpcModel):
    method: str
    token: str | None = None


class WebServer(FrpcModel):
    addr: str | None = None
    port: int = Field(ge=1, le=65535)


class ProxyPlugin(FrpcModel):
    """Out-of-band proxy behaviour, e.g. TLS termination.

    ``secret_name`` and ``secret_namespace`` point at the Secret holding the
    certificate. They are only used to stage that material and are never
    written to the frpc configuration.
    """

    type: str
    local_addr: str | None = None
    crt_path: str | None = None
    key_path: str | None = None
    host_header_rewrite: str | None = None
    secret_name: str | None = Field(default=None, exclude=True)
    secret_namespace: str | None = Field(default=None, exclude=True)

    @property
    def secret_ref(self) -> SecretRef | None:
        if not self.secret_name or not self.secret_namespace:
            return None
        return SecretRef(self.secret_namespace, self.secret_name)


class Proxy(FrpcModel):
    """One route through the tunnel."""

    name: str = Field(min_length=1)
    type: ProxyType
    local_ip: str | None = None
    local_port: int | None = Field(default=None, ge=1, le=65535)
    remote_port: int | None = Field(default=None, ge=1, le=65535)
    custom_domains: list[str] | None = None
    locations: list[str] | None = None
    plugin: ProxyPlugin | None = None
    load_balancer: LoadBalancer | None = None
    transport: ProxyTransport | None = None

    @model_validator(mode="after")
    def check_plugin_exclusivity(self) -> "Proxy":
        """A TLS plugin carries the backend address, direct routing must be empty."""
        if self.type == ProxyType.HTTPS and self.plugin is not None:
            if self.local_ip is not None or self.local_port is not None or self.locations:
                raise ValueError(
                    f"proxy {self.name}: https proxies with a plugin must not set localIp, localPort or locations"
                )
            if not self.plugin.local_addr:
                raise ValueError(f"proxy {self.name}: plugin localAddr is required for https proxies")
        return self


class ClientConfig(FrpcModel):
    """Root configuration of one frpc instance."""

    server_addr: str = Field(min_length=1)
    server_port: int = Field(ge=1, le=65535)
    auth: Auth | None = None
    webserver: WebServer | None = None
    proxies: list[Proxy] = Field(default_factory=list)
    includes: list[str] = Field(default_factory=list)
    transport: Transport | None = None

    @classmethod
    def from_yaml(cls, text: str) -> "ClientConfig":
        return cls.model_validate(yaml.safe_load(text) or {})


class ProxyConfig(FrpcModel):
    """The proxies generated for one source object.

    ``name`` is the artifact name of the source object; it names the fragment
    file and is not part of the serialized document.
    """

    name: str = Field(exclude=True)
    proxies: list[Proxy] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, name: str, text: str) -> "ProxyConfig":
        data = yaml.safe_load(text) or {}
        return cls.model_validate({**data, "name": name})

    def secret_refs(self) -> set[SecretRef]:
        """Return the Secrets referenced by any proxy plugin."""
        refs = set()
        for proxy in self.proxies:
            if proxy.plugin is not None and proxy.plugin.secret_ref is not None:
                refs.add(proxy.plugin.secret_ref)
        return refs
