"""frpc configuration model and process management."""

from frp_operator.frpc.config import (
    HTTPS2HTTP_PLUGIN,
    Auth,
    ClientConfig,
    LoadBalancer,
    Proxy,
    ProxyConfig,
    ProxyPlugin,
    ProxyTransport,
    ProxyType,
    Transport,
    WebServer,
)
from frp_operator.frpc.process import FrpcProcess

__all__ = [
    "HTTPS2HTTP_PLUGIN",
    "Auth",
    "ClientConfig",
    "FrpcProcess",
    "LoadBalancer",
    "Proxy",
    "ProxyConfig",
    "ProxyPlugin",
    "ProxyTransport",
    "ProxyType",
    "Transport",
    "WebServer",
]
