__version__ = "0.1.0"
__description__ = (
    "Kubernetes operator exposing Ingresses and LoadBalancer Services through an frp reverse tunnel"
)
