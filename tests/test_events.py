"""Tests for the Kubernetes events module."""

import unittest
from unittest import mock

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from frp_operator.kubernetes.connection import KubernetesConnection
from frp_operator.kubernetes.resources.events import (
    EVENT_ACTION_CLEANUP,
    create_cleanup_event,
    create_failure_event,
    create_reconciled_event,
    create_warning_event,
)


class TestEvents(unittest.TestCase):
    """Test cases for event creation."""

    def setUp(self):
        self.connection = mock.Mock(spec=KubernetesConnection)
        self.connection.events_v1_api = mock.Mock()
        self.connection.instance_id = "frp-operator-0"
        self.ingress = client.V1Ingress(metadata=client.V1ObjectMeta(name="shop", namespace="web", uid="u-1"))

    def test_reconciled_event(self):
        """Test that the event points at the reconciled object."""
        create_reconciled_event(self.connection, self.ingress, "networking.k8s.io/v1", "Ingress", "Exposed")

        kwargs = self.connection.events_v1_api.create_namespaced_event.call_args.kwargs
        self.assertEqual(kwargs["namespace"], "web")
        body = kwargs["body"]
        self.assertEqual(body.type, "Normal")
        self.assertEqual(body.reason, "Reconciled")
        self.assertEqual(body.action, "Apply")
        self.assertEqual(body.reporting_controller, "frp-operator")
        self.assertEqual(body.reporting_instance, "frp-operator-0")
        self.assertEqual(body.regarding.kind, "Ingress")
        self.assertEqual(body.regarding.uid, "u-1")
        self.assertEqual(body.metadata.generate_name, "shop-")

    def test_failure_event_truncates_note(self):
        create_failure_event(
            self.connection, self.ingress, "networking.k8s.io/v1", "Ingress", "x" * 2000, EVENT_ACTION_CLEANUP
        )

        body = self.connection.events_v1_api.create_namespaced_event.call_args.kwargs["body"]
        self.assertEqual(body.type, "Warning")
        self.assertEqual(body.action, "Cleanup")
        self.assertEqual(len(body.note), 1024)

    def test_warning_event(self):
        """Test that parts left out of an object are reported as a warning."""
        create_warning_event(
            self.connection,
            self.ingress,
            "networking.k8s.io/v1",
            "Ingress",
            "path /api of shop.example.com is not exposed",
        )

        body = self.connection.events_v1_api.create_namespaced_event.call_args.kwargs["body"]
        self.assertEqual(body.type, "Warning")
        self.assertEqual(body.reason, "PartiallyExposed")
        self.assertEqual(body.action, "Apply")
        self.assertEqual(body.note, "path /api of shop.example.com is not exposed")

    def test_dict_resource(self):
        """Test events on custom resources, which come back as dictionaries."""
        resource = {"metadata": {"name": "main", "namespace": "frp", "uid": "u-2"}}

        create_cleanup_event(self.connection, resource, "frp-operator.io/v1", "Client", "Removed")

        body = self.connection.events_v1_api.create_namespaced_event.call_args.kwargs["body"]
        self.assertEqual(body.reason, "CleanedUp")
        self.assertEqual(body.regarding.name, "main")

    def test_errors_are_not_raised(self):
        """Test that a failure to record an event never fails the reconcile."""
        self.connection.events_v1_api.create_namespaced_event.side_effect = ApiException(status=403)

        create_reconciled_event(self.connection, self.ingress, "networking.k8s.io/v1", "Ingress", "Exposed")

    def test_missing_namespace(self):
        ingress = client.V1Ingress(metadata=client.V1ObjectMeta(name="shop"))
        create_reconciled_event(self.connection, ingress, "networking.k8s.io/v1", "Ingress", "Exposed")
        self.connection.events_v1_api.create_namespaced_event.assert_not_called()


if __name__ == "__main__":
    unittest.main()
