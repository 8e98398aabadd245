"""Tests for the Ingress and Service controllers."""

import threading
import unittest
from datetime import UTC, datetime
from unittest import mock

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from frp_operator.appliers import ConfigApplier, TunnelTarget
from frp_operator.config import OperatorConfig, ServiceStrategy
from frp_operator.controllers import IngressController, ServiceController
from frp_operator.controllers.ingress import INGRESS_FINALIZER
from frp_operator.controllers.service import SERVICE_FINALIZER
from frp_operator.exceptions import ResolutionError
from frp_operator.kubernetes.connection import KubernetesConnection
from frp_operator.kubernetes.resources.ingresses import IngressResource
from frp_operator.kubernetes.resources.services import ServiceResource
from frp_operator.naming import SecretRef
from frp_operator.staging import SecretStager

TARGET = TunnelTarget(server_addr="203.0.113.7", namespace="frp", deployment="frpc")


def make_ingress(class_name="frp", finalizers=None, deleting=False, tls=False, paths=("/",)):
    return client.V1Ingress(
        metadata=client.V1ObjectMeta(
            name="shop",
            namespace="web",
            resource_version="3",
            finalizers=finalizers,
            deletion_timestamp=datetime(2024, 1, 1, tzinfo=UTC) if deleting else None,
        ),
        spec=client.V1IngressSpec(
            ingress_class_name=class_name,
            rules=[
                client.V1IngressRule(
                    host="shop.example.com",
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(
                                path=path,
                                path_type="Prefix",
                                backend=client.V1IngressBackend(
                                    service=client.V1IngressServiceBackend(
                                        name="shop", port=client.V1ServiceBackendPort(number=80)
                                    )
                                ),
                            )
                            for path in paths
                        ]
                    ),
                )
            ],
            tls=[client.V1IngressTLS(hosts=["shop.example.com"], secret_name="shop-tls")] if tls else None,
        ),
    )


def make_service(lb_class="frp", finalizers=None, deleting=False):
    return client.V1Service(
        metadata=client.V1ObjectMeta(
            name="pg",
            namespace="db",
            resource_version="5",
            finalizers=finalizers,
            deletion_timestamp=datetime(2024, 1, 1, tzinfo=UTC) if deleting else None,
        ),
        spec=client.V1ServiceSpec(
            type="LoadBalancer",
            load_balancer_class=lb_class,
            selector={"app": "pg"},
            ports=[client.V1ServicePort(name="pg", port=5432, target_port=5432, protocol="TCP")],
        ),
    )


class ControllerTestCase(unittest.TestCase):
    """Shared fixtures: a store over mocked APIs and mocked collaborators."""

    def setUp(self):
        self.connection = mock.MagicMock(spec=KubernetesConnection)
        self.connection.networking_v1_api = mock.MagicMock()
        self.connection.core_v1_api = mock.MagicMock()
        self.connection.to_dict.return_value = {}

        self.store = mock.MagicMock()
        self.store.connection = self.connection
        self.store.ingresses = IngressResource(self.connection)
        self.store.services = ServiceResource(self.connection)
        self.store.get_service.return_value = client.V1Service(
            metadata=client.V1ObjectMeta(name="shop", namespace="web"),
            spec=client.V1ServiceSpec(ports=[client.V1ServicePort(port=80)]),
        )
        self.store.get_secret.return_value = client.V1Secret(data={"tls.crt": "", "tls.key": ""})

        self.applier = mock.MagicMock(spec=ConfigApplier)
        self.applier.resolve_target.return_value = TARGET
        self.applier.apply.return_value = True
        self.applier.referenced_secrets.return_value = set()
        self.stager = mock.MagicMock(spec=SecretStager)

        self.events = {}
        for name in (
            "create_reconciled_event",
            "create_failure_event",
            "create_cleanup_event",
            "create_warning_event",
        ):
            patcher = mock.patch(f"frp_operator.controllers.base.{name}")
            self.events[name] = patcher.start()
            self.addCleanup(patcher.stop)


class TestIngressController(ControllerTestCase):
    """Test cases for the Ingress lifecycle."""

    def setUp(self):
        super().setUp()
        self.config = OperatorConfig()
        self.controller = IngressController(self.store, self.config, self.applier, self.stager)
        self.api = self.connection.networking_v1_api

    def serve(self, ingress):
        self.api.read_namespaced_ingress.return_value = ingress
        self.api.patch_namespaced_ingress.return_value = ingress

    def test_gone(self):
        """Test that a deleted Ingress is forgotten."""
        self.api.read_namespaced_ingress.side_effect = ApiException(status=404)

        self.assertIsNone(self.controller.reconcile("web", "shop"))

        self.applier.apply.assert_not_called()

    def test_apply(self):
        """Test that an eligible Ingress gets a finalizer, proxies and a status."""
        # Setup
        self.serve(make_ingress(tls=True))

        # Execute
        requeue = self.controller.reconcile("web", "shop")

        # Assertions
        self.assertEqual(requeue, self.config.reconciliation_interval)
        finalizer_body = self.api.patch_namespaced_ingress.call_args[0][2]
        self.assertEqual(finalizer_body["metadata"]["finalizers"], [INGRESS_FINALIZER])

        self.stager.stage.assert_called_once()
        staged = self.stager.stage.call_args[0][1]
        self.assertEqual(set(staged), {SecretRef("web", "shop-tls")})

        self.applier.apply.assert_called_once()
        target, proxy_config = self.applier.apply.call_args[0]
        self.assertEqual(target, TARGET)
        self.assertEqual(proxy_config.name, "ingress-web-shop-4586ae56")
        self.stager.prune.assert_called_once_with(TARGET, set())

        self.api.patch_namespaced_ingress_status.assert_called_once()
        status = self.api.patch_namespaced_ingress_status.call_args[0][2]["status"]
        self.assertEqual(
            status["loadBalancer"]["ingress"][0],
            {"ip": "203.0.113.7", "ports": [{"port": 80, "protocol": "TCP"}, {"port": 443, "protocol": "TCP"}]},
        )
        self.events["create_reconciled_event"].assert_called_once()
        self.events["create_warning_event"].assert_not_called()

    def test_dropped_https_path_is_reported(self):
        """Test that a path left out of an https proxy is recorded in a warning event."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER], tls=True, paths=("/", "/api")))

        self.controller.reconcile("web", "shop")

        proxy_config = self.applier.apply.call_args[0][1]
        self.assertEqual(len(proxy_config.proxies), 1)
        self.events["create_warning_event"].assert_called_once()
        message = self.events["create_warning_event"].call_args[0][4]
        self.assertEqual(message, "path /api of shop.example.com is not exposed, https routes by host only")

    def test_apply_holds_stager_lock(self):
        """Test that staging, applying and pruning happen under the shared stager lock."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER], tls=True))
        self.stager.lock = threading.Lock()
        held = []
        self.stager.stage.side_effect = lambda *args: held.append(("stage", self.stager.lock.locked()))
        self.stager.prune.side_effect = lambda *args: held.append(("prune", self.stager.lock.locked()))

        def apply(*args):
            held.append(("apply", self.stager.lock.locked()))
            return True

        self.applier.apply.side_effect = apply

        self.controller.reconcile("web", "shop")

        self.assertEqual(held, [("stage", True), ("apply", True), ("prune", True)])
        self.assertFalse(self.stager.lock.locked())

    def test_cleanup_holds_stager_lock(self):
        """Test that removing and pruning happen under the shared stager lock."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER], deleting=True))
        self.stager.lock = threading.Lock()
        held = []
        self.applier.remove.side_effect = lambda *args: held.append(("remove", self.stager.lock.locked()))
        self.stager.prune.side_effect = lambda *args: held.append(("prune", self.stager.lock.locked()))

        self.controller.reconcile("web", "shop")

        self.assertEqual(held, [("remove", True), ("prune", True)])
        self.assertFalse(self.stager.lock.locked())

    def test_status_unchanged(self):
        """Test that an up to date status and config lead to no write and no event."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER]))
        self.applier.apply.return_value = False
        self.connection.to_dict.return_value = {
            "status": {
                "loadBalancer": {"ingress": [{"ip": "203.0.113.7", "ports": [{"port": 80, "protocol": "TCP"}]}]}
            }
        }

        self.controller.reconcile("web", "shop")

        self.api.patch_namespaced_ingress.assert_not_called()
        self.api.patch_namespaced_ingress_status.assert_not_called()
        self.events["create_reconciled_event"].assert_not_called()

    def test_apply_failure(self):
        """Test that a failed apply records an event and propagates."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER]))
        self.applier.resolve_target.side_effect = ResolutionError("No Client resource found")

        with self.assertRaises(ResolutionError):
            self.controller.reconcile("web", "shop")

        self.events["create_failure_event"].assert_called_once()
        self.api.patch_namespaced_ingress_status.assert_not_called()

    def test_ineligible(self):
        """Test that an Ingress of another class is left alone."""
        self.serve(make_ingress(class_name="nginx"))

        requeue = self.controller.reconcile("web", "shop")

        self.assertEqual(requeue, self.config.idle_interval)
        self.api.patch_namespaced_ingress.assert_not_called()
        self.applier.remove.assert_not_called()

    def test_opted_out(self):
        """Test that an Ingress moved to another class loses its proxies and finalizer."""
        self.serve(make_ingress(class_name="nginx", finalizers=[INGRESS_FINALIZER]))

        requeue = self.controller.reconcile("web", "shop")

        self.assertEqual(requeue, self.config.idle_interval)
        self.applier.remove.assert_called_once_with(TARGET, "ingress-web-shop-4586ae56")
        self.assertEqual(self.api.patch_namespaced_ingress.call_args[0][2]["metadata"]["finalizers"], [])

    def test_deletion(self):
        """Test that a deleted Ingress is cleaned up before its finalizer is released."""
        self.serve(make_ingress(finalizers=["other", INGRESS_FINALIZER], deleting=True))
        self.applier.referenced_secrets.return_value = {SecretRef("web", "blog-tls")}

        self.assertIsNone(self.controller.reconcile("web", "shop"))

        self.applier.remove.assert_called_once_with(TARGET, "ingress-web-shop-4586ae56")
        self.stager.prune.assert_called_once_with(TARGET, {SecretRef("web", "blog-tls")})
        self.assertEqual(self.api.patch_namespaced_ingress.call_args[0][2]["metadata"]["finalizers"], ["other"])
        self.events["create_cleanup_event"].assert_called_once()

    def test_deletion_without_finalizer(self):
        self.serve(make_ingress(deleting=True, finalizers=["other"]))

        self.assertIsNone(self.controller.reconcile("web", "shop"))

        self.applier.remove.assert_not_called()
        self.api.patch_namespaced_ingress.assert_not_called()

    def test_deletion_without_tunnel_client(self):
        """Test that a missing tunnel client does not block deletion."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER], deleting=True))
        self.applier.resolve_target.side_effect = ResolutionError("No Client resource found")

        self.assertIsNone(self.controller.reconcile("web", "shop"))

        self.applier.remove.assert_not_called()
        self.assertEqual(self.api.patch_namespaced_ingress.call_args[0][2]["metadata"]["finalizers"], [])

    def test_cleanup_failure_keeps_finalizer(self):
        """Test that a failed cleanup keeps the finalizer so that it is retried."""
        self.serve(make_ingress(finalizers=[INGRESS_FINALIZER], deleting=True))
        self.applier.remove.side_effect = ApiException(status=500)

        with self.assertRaises(ApiException):
            self.controller.reconcile("web", "shop")

        self.api.patch_namespaced_ingress.assert_not_called()
        self.events["create_failure_event"].assert_called_once()


class TestServiceController(ControllerTestCase):
    """Test cases for the Service lifecycle."""

    def setUp(self):
        super().setUp()
        self.api = self.connection.core_v1_api

    def make_controller(self, strategy):
        config = OperatorConfig(service_strategy=strategy)
        return ServiceController(self.store, config, self.applier, self.stager)

    def test_per_replica(self):
        """Test that the per-replica strategy creates one proxy per pod."""
        controller = self.make_controller(ServiceStrategy.PER_REPLICA)
        service = make_service()
        self.api.read_namespaced_service.return_value = service
        self.api.patch_namespaced_service.return_value = service
        self.store.list_pods.return_value = [
            client.V1Pod(metadata=client.V1ObjectMeta(name="pg-0"), status=client.V1PodStatus(pod_ip="10.0.0.1")),
            client.V1Pod(metadata=client.V1ObjectMeta(name="pg-1"), status=client.V1PodStatus(pod_ip="10.0.0.2")),
        ]

        controller.reconcile("db", "pg")

        self.assertTrue(controller.per_replica)
        proxy_config = self.applier.apply.call_args[0][1]
        self.assertEqual([p.local_ip for p in proxy_config.proxies], ["10.0.0.1", "10.0.0.2"])
        status = self.api.patch_namespaced_service_status.call_args[0][2]["status"]
        self.assertEqual(status["loadBalancer"]["ingress"][0]["ports"], [{"port": 5432, "protocol": "TCP"}])
        finalizers = self.api.patch_namespaced_service.call_args[0][2]["metadata"]["finalizers"]
        self.assertEqual(finalizers, [SERVICE_FINALIZER])

    def test_single_endpoint(self):
        controller = self.make_controller(ServiceStrategy.SINGLE_ENDPOINT)
        service = make_service(finalizers=[SERVICE_FINALIZER])
        self.api.read_namespaced_service.return_value = service

        controller.reconcile("db", "pg")

        self.assertFalse(controller.per_replica)
        proxy_config = self.applier.apply.call_args[0][1]
        self.assertEqual([p.local_ip for p in proxy_config.proxies], ["pg.db.svc.cluster.local"])
        self.store.list_pods.assert_not_called()

    def test_other_load_balancer_class(self):
        controller = self.make_controller(ServiceStrategy.SINGLE_ENDPOINT)
        self.api.read_namespaced_service.return_value = make_service(lb_class="metallb")

        controller.reconcile("db", "pg")

        self.applier.apply.assert_not_called()

    def test_services_for_pod(self):
        """Test mapping a pod to the handled Services selecting it."""
        controller = self.make_controller(ServiceStrategy.PER_REPLICA)
        other = make_service(lb_class="metallb")
        other.metadata.name = "pg-metallb"
        result = mock.MagicMock()
        result.items = [make_service(), other]
        result.metadata._continue = None
        self.api.list_namespaced_service.return_value = result
        pod = client.V1Pod(metadata=client.V1ObjectMeta(name="pg-0", namespace="db", labels={"app": "pg"}))

        self.assertEqual(controller.services_for_pod(pod), [("db", "pg")])
        self.api.list_namespaced_service.assert_called_once_with("db", limit=100, _continue=None)


if __name__ == "__main__":
    unittest.main()
