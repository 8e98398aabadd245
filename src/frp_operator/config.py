"""Configuration module for the frp operator.

This module handles the configuration of the operator through environment variables.
"""
import os
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


class OperatorMode(str, Enum):
    """Where the tunnel client runs.

    In cluster mode the operator manages an frpc Deployment described by a
    Client resource. In agent mode it runs frpc itself as a child process.
    """
    CLUSTER = "cluster"
    AGENT = "agent"


class ServiceStrategy(str, Enum):
    """How LoadBalancer Services are turned into proxies."""
    PER_REPLICA = "per-replica"
    SINGLE_ENDPOINT = "single-endpoint"


class OperatorConfig(BaseModel):
    """Configuration class for the frp operator.

    Attributes:
        mode: Whether frpc runs as a managed Deployment or as a child process.
        namespace: Namespace to watch. None watches all namespaces.
        ingress_class: Ingress class handled by this operator.
        load_balancer_class: Service loadBalancerClass handled by this operator.
        service_strategy: Service translation strategy. None picks the default of the mode.
        cluster_domain: Cluster DNS domain used to build in-cluster service addresses.
        config_root: Directory holding the frpc configuration inside the tunnel client.
        frpc_binary: Path to the frpc binary (agent mode).
        frpc_image: Container image of the frpc Deployment (cluster mode).
        reconciliation_interval: Seconds before a converged object is reconciled again.
        idle_interval: Seconds before an object with nothing to converge is looked at again.
        error_backoff: Seconds before a failed reconcile is retried.
        workers: Concurrent reconciles per watched kind.
        server_addr: frps address (agent mode).
        server_port: frps port (agent mode).
        webserver_addr: frpc admin webserver address (agent mode).
        webserver_port: frpc admin webserver port (agent mode), required for reloads.
        auth_token: frps authentication token (agent mode).
        transport_protocol: Transport protocol override (agent mode).
    """
    mode: OperatorMode = OperatorMode.CLUSTER
    namespace: str | None = None
    ingress_class: str = "frp"
    load_balancer_class: str = "frp"
    service_strategy: ServiceStrategy | None = None
    cluster_domain: str = "cluster.local"
    config_root: str = "/etc/frp"
    frpc_binary: str = "/app/frpc"
    frpc_image: str = "docker.io/snowdreamtech/frpc:latest"
    reconciliation_interval: int = Field(default=60, gt=0)
    idle_interval: int = Field(default=3600, gt=0)
    error_backoff: int = Field(default=15, gt=0)
    workers: int = Field(default=1, ge=1)
    server_addr: str | None = None
    server_port: int = Field(default=7000, ge=1, le=65535)
    webserver_addr: str | None = None
    webserver_port: int | None = Field(default=None, ge=1, le=65535)
    auth_token: str | None = None
    transport_protocol: str | None = None

    @field_validator("config_root")
    def validate_config_root(cls, v):
        """Validate that the config root is an absolute path"""
        if not v.startswith("/"):
            raise ValueError("Config root must be an absolute path")
        return v.rstrip("/") or "/"

    @field_validator("transport_protocol")
    def validate_transport_protocol(cls, v):
        """Validate the transport protocol against the ones frpc knows"""
        if v is not None and v not in ("tcp", "kcp", "quic", "websocket", "wss"):
            raise ValueError(f"Unknown transport protocol: {v}")
        return v

    @model_validator(mode="after")
    def validate_agent_server(self):
        """Agent mode builds the root config itself and needs a server address"""
        if self.mode == OperatorMode.AGENT and not self.server_addr:
            raise ValueError("Agent mode requires a server address")
        return self

    @property
    def effective_service_strategy(self) -> ServiceStrategy:
        """The service strategy in use, defaulting per mode."""
        if self.service_strategy is not None:
            return self.service_strategy
        if self.mode == OperatorMode.AGENT:
            return ServiceStrategy.SINGLE_ENDPOINT
        return ServiceStrategy.PER_REPLICA

    @property
    def root_config_path(self) -> str:
        return f"{self.config_root}/frpc.yaml"

    @property
    def cert_root(self) -> str:
        return f"{self.config_root}/certs"

    @classmethod
    def from_env(cls, **overrides):
        """Create a config instance from environment variables.

        Args:
            **overrides: Values taking precedence over the environment, e.g. from the command line.
        """
        values = {
            "mode": os.getenv("FRP_OPERATOR_MODE", "cluster"),
            "namespace": os.getenv("FRP_OPERATOR_NAMESPACE"),
            "ingress_class": os.getenv("FRP_OPERATOR_INGRESS_CLASS", "frp"),
            "load_balancer_class": os.getenv("FRP_OPERATOR_LOAD_BALANCER_CLASS", "frp"),
            "service_strategy": os.getenv("FRP_OPERATOR_SERVICE_STRATEGY"),
            "cluster_domain": os.getenv("FRP_OPERATOR_CLUSTER_DOMAIN", "cluster.local"),
            "config_root": os.getenv("FRP_OPERATOR_CONFIG_ROOT", "/etc/frp"),
            "frpc_binary": os.getenv("FRP_OPERATOR_FRPC_BINARY", "/app/frpc"),
            "frpc_image": os.getenv("FRP_OPERATOR_FRPC_IMAGE", "docker.io/snowdreamtech/frpc:latest"),
            "reconciliation_interval": int(os.getenv("FRP_OPERATOR_RECONCILIATION_INTERVAL", "60")),
            "idle_interval": int(os.getenv("FRP_OPERATOR_IDLE_INTERVAL", "3600")),
            "error_backoff": int(os.getenv("FRP_OPERATOR_ERROR_BACKOFF", "15")),
            "workers": int(os.getenv("FRP_OPERATOR_WORKERS", "1")),
            "server_addr": os.getenv("FRP_OPERATOR_SERVER_ADDR"),
            "server_port": int(os.getenv("FRP_OPERATOR_SERVER_PORT", "7000")),
            "webserver_addr": os.getenv("FRP_OPERATOR_WEBSERVER_ADDR"),
            "webserver_port": os.getenv("FRP_OPERATOR_WEBSERVER_PORT"),
            "auth_token": os.getenv("AUTH_TOKEN"),
            "transport_protocol": os.getenv("FRP_OPERATOR_TRANSPORT_PROTOCOL"),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
