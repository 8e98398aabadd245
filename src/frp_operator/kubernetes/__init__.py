"""Kubernetes client module for the frp operator.

This module handles all interactions with the Kubernetes API.
"""

import logging

from frp_operator.kubernetes.base import (
    FIELD_MANAGER,
    OPERATOR_LABELS,
    PATCH_APPLY,
    PATCH_JSON,
    PATCH_MERGE,
    SOURCE_ANNOTATION,
    TLS_SECRETS_ANNOTATION,
)
from frp_operator.kubernetes.controller import KubernetesStore

logger = logging.getLogger(__name__)

# Export KubernetesStore as the main interface
__all__ = [
    "KubernetesStore",
    "FIELD_MANAGER",
    "OPERATOR_LABELS",
    "PATCH_APPLY",
    "PATCH_JSON",
    "PATCH_MERGE",
    "SOURCE_ANNOTATION",
    "TLS_SECRETS_ANNOTATION",
]
