"""Tests for the TLS staging module."""

import base64
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from kubernetes import client

from frp_operator.appliers import TunnelTarget
from frp_operator.kubernetes.base import SOURCE_ANNOTATION
from frp_operator.naming import SecretRef
from frp_operator.staging import ClusterSecretStager, FileSecretStager

OWNER = {"apiVersion": "frp-operator.io/v1", "kind": "Client", "name": "main", "uid": "u-1"}
TARGET = TunnelTarget(server_addr="frps.example.com", namespace="frp", owner_reference=OWNER, deployment="frpc")


def make_secret(cert=b"CERT", key=b"KEY"):
    return client.V1Secret(
        type="kubernetes.io/tls",
        data={"tls.crt": base64.b64encode(cert).decode(), "tls.key": base64.b64encode(key).decode()},
    )


class TestClusterSecretStager(unittest.TestCase):
    """Test cases for copying Secrets next to the frpc Deployment."""

    def setUp(self):
        self.store = mock.MagicMock()
        self.stager = ClusterSecretStager(self.store)

    def test_stage(self):
        """Test that a Secret is copied with labels, source annotation and owner."""
        secret = make_secret()

        self.stager.stage(TARGET, {SecretRef("web", "shop-tls"): secret})

        body = self.store.secrets.apply_resource.call_args[0][0]
        self.assertEqual(body["metadata"]["name"], "frpc-tls-web-shop-tls-618356f6")
        self.assertEqual(body["metadata"]["namespace"], "frp")
        self.assertEqual(body["metadata"]["annotations"], {SOURCE_ANNOTATION: "web/shop-tls"})
        self.assertEqual(body["metadata"]["labels"]["app.kubernetes.io/component"], "tls")
        self.assertEqual(body["metadata"]["ownerReferences"], [OWNER])
        self.assertEqual(body["type"], "kubernetes.io/tls")
        self.assertEqual(body["data"], secret.data)

    def test_prune(self):
        """Test that only staged Secrets without a referencing proxy are deleted."""
        kept = {
            "metadata": {"name": "frpc-tls-web-shop-tls-618356f6", "annotations": {SOURCE_ANNOTATION: "web/shop-tls"}}
        }
        stale = {
            "metadata": {"name": "frpc-tls-web-old-tls-470bb570", "annotations": {SOURCE_ANNOTATION: "web/old-tls"}}
        }
        self.store.secrets.iter_resources.return_value = [kept, stale]
        self.store.secrets.get_annotations.side_effect = lambda s: s["metadata"]["annotations"]
        self.store.secrets.get_resource_name.side_effect = lambda s: s["metadata"]["name"]

        self.stager.prune(TARGET, {SecretRef("web", "shop-tls")})

        self.store.secrets.iter_resources.assert_called_once_with(
            namespace="frp", label_selector="app.kubernetes.io/part-of=frp-operator,app.kubernetes.io/component=tls"
        )
        self.store.secrets.delete_resource_if_exists.assert_called_once_with("frpc-tls-web-old-tls-470bb570", "frp")


class TestFileSecretStager(unittest.TestCase):
    """Test cases for writing Secrets as files."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.cert_root = Path(self.tmp.name) / "certs"
        self.stager = FileSecretStager(str(self.cert_root))
        self.target = TunnelTarget(server_addr="frps.example.com")

    def tearDown(self):
        self.tmp.cleanup()

    def test_stage(self):
        """Test that every key is written decoded and private."""
        self.stager.stage(self.target, {SecretRef("web", "shop-tls"): make_secret()})

        directory = self.cert_root / "web" / "shop-tls"
        self.assertEqual((directory / "tls.crt").read_bytes(), b"CERT")
        self.assertEqual((directory / "tls.key").read_bytes(), b"KEY")
        self.assertEqual(os.stat(directory / "tls.key").st_mode & 0o777, 0o600)

    def test_stage_keeps_existing_files(self):
        ref = SecretRef("web", "shop-tls")
        self.stager.stage(self.target, {ref: make_secret(cert=b"OLD")})
        self.stager.stage(self.target, {ref: make_secret(cert=b"NEW")})
        self.assertEqual((self.cert_root / "web" / "shop-tls" / "tls.crt").read_bytes(), b"OLD")

    def test_prune(self):
        """Test that unreferenced directories go, along with emptied namespaces."""
        kept = SecretRef("web", "shop-tls")
        self.stager.stage(
            self.target,
            {kept: make_secret(), SecretRef("web", "old-tls"): make_secret(), SecretRef("db", "pg-tls"): make_secret()},
        )

        self.stager.prune(self.target, {kept})

        self.assertTrue((self.cert_root / "web" / "shop-tls" / "tls.crt").exists())
        self.assertFalse((self.cert_root / "web" / "old-tls").exists())
        self.assertFalse((self.cert_root / "db").exists())

    def test_prune_without_cert_root(self):
        self.stager.prune(self.target, set())
        self.assertFalse(self.cert_root.exists())

    def test_lock_is_shared(self):
        """Test that every stager serializes on the same lock."""
        self.assertIs(self.stager.lock, ClusterSecretStager(mock.MagicMock()).lock)
        self.assertIs(self.stager.lock, FileSecretStager(str(self.cert_root / "other")).lock)


if __name__ == "__main__":
    unittest.main()
