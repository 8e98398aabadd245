"""Tests for the command-line interface."""

import os
import unittest
from unittest import mock

from frp_operator import cli
from frp_operator.appliers import ClusterConfigApplier, FileConfigApplier
from frp_operator.config import OperatorConfig, OperatorMode, ServiceStrategy
from frp_operator.exceptions import ConfigurationError
from frp_operator.staging import ClusterSecretStager, FileSecretStager


class TestParseArgs(unittest.TestCase):
    """Test cases for argument parsing."""

    def test_defaults(self):
        args = cli.parse_args([])
        self.assertFalse(args.verbose)
        self.assertFalse(args.reconcile_once)
        self.assertIsNone(args.mode)
        self.assertIsNone(args.interval)

    def test_flags(self):
        args = cli.parse_args(
            ["--mode", "agent", "--server-addr", "frps.example.com", "--webserver-port", "7400", "--reconcile-once"]
        )
        self.assertEqual(args.mode, "agent")
        self.assertEqual(args.server_addr, "frps.example.com")
        self.assertEqual(args.webserver_port, 7400)
        self.assertTrue(args.reconcile_once)

    def test_invalid_mode(self):
        with self.assertRaises(SystemExit):
            cli.parse_args(["--mode", "sidecar"])


class TestLoadConfig(unittest.TestCase):
    """Test cases for building the configuration."""

    @mock.patch.dict(os.environ, {"FRP_OPERATOR_NAMESPACE": "from-env"}, clear=True)
    def test_command_line_wins(self):
        config = cli.load_config(cli.parse_args(["--namespace", "from-cli", "--interval", "30"]))
        self.assertEqual(config.namespace, "from-cli")
        self.assertEqual(config.reconciliation_interval, 30)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_invalid(self):
        """Test that an invalid configuration is reported as a configuration error."""
        with self.assertRaises(ConfigurationError):
            cli.load_config(cli.parse_args(["--mode", "agent"]))


class TestBuildLoops(unittest.TestCase):
    """Test cases for wiring the reconcile loops."""

    def setUp(self):
        self.store = mock.MagicMock()
        self.applier = mock.MagicMock()
        self.stager = mock.MagicMock()

    def test_cluster_mode(self):
        """Test that cluster mode reconciles Clients first and watches pods for per-replica Services."""
        loops = cli.build_loops(OperatorConfig(), self.store, self.applier, self.stager)

        self.assertEqual([loop.kind for loop in loops], ["Client", "Ingress", "Service"])
        self.assertIs(loops[0].handler, self.store.clients)
        self.assertEqual([handler for handler, _ in loops[2].watches], [self.store.services, self.store.pods])

    def test_agent_mode(self):
        config = OperatorConfig(mode=OperatorMode.AGENT, server_addr="frps.example.com")

        loops = cli.build_loops(config, self.store, self.applier, self.stager)

        self.assertEqual([loop.kind for loop in loops], ["Ingress", "Service"])
        self.assertEqual(len(loops[1].watches), 1)

    def test_cluster_mode_single_endpoint(self):
        config = OperatorConfig(service_strategy=ServiceStrategy.SINGLE_ENDPOINT)
        loops = cli.build_loops(config, self.store, self.applier, self.stager)
        self.assertEqual(len(loops[2].watches), 1)


class TestMain(unittest.TestCase):
    """Test cases for the main entry point."""

    def setUp(self):
        patcher = mock.patch("frp_operator.cli.setup_logging")
        patcher.start()
        self.addCleanup(patcher.stop)

    @mock.patch.dict(os.environ, {}, clear=True)
    @mock.patch("frp_operator.cli.Scheduler")
    @mock.patch("frp_operator.cli.KubernetesStore")
    def test_reconcile_once_cluster(self, mock_store_class, mock_scheduler_class):
        """Test a single reconciliation pass in cluster mode."""
        exit_code = cli.main(["--reconcile-once", "--namespace", "web"])

        self.assertEqual(exit_code, 0)
        mock_store_class.assert_called_once_with(namespace="web")
        mock_scheduler_class.return_value.reconcile.assert_called_once()
        mock_scheduler_class.return_value.run.assert_not_called()

    @mock.patch.dict(os.environ, {}, clear=True)
    @mock.patch("frp_operator.cli.build_loops")
    @mock.patch("frp_operator.cli.Scheduler")
    @mock.patch("frp_operator.cli.FrpcProcess")
    @mock.patch("frp_operator.cli.KubernetesStore")
    def test_reconcile_once_agent(self, mock_store_class, mock_process_class, mock_scheduler_class, mock_build_loops):
        """Test that agent mode writes the root config and never starts frpc for a single pass."""
        process = mock_process_class.return_value
        process.is_running.return_value = False

        exit_code = cli.main(["--reconcile-once", "--mode", "agent", "--server-addr", "frps.example.com"])

        self.assertEqual(exit_code, 0)
        process.write_config.assert_called_once()
        process.start.assert_not_called()
        _, applier, stager = mock_build_loops.call_args[0][1:]
        self.assertIsInstance(applier, FileConfigApplier)
        self.assertIsNone(applier.process)
        self.assertIsInstance(stager, FileSecretStager)

    @mock.patch.dict(os.environ, {}, clear=True)
    @mock.patch("frp_operator.cli.build_loops")
    @mock.patch("frp_operator.cli.Scheduler")
    @mock.patch("frp_operator.cli.KubernetesStore")
    def test_cluster_collaborators(self, mock_store_class, mock_scheduler_class, mock_build_loops):
        cli.main(["--reconcile-once"])

        _, applier, stager = mock_build_loops.call_args[0][1:]
        self.assertIsInstance(applier, ClusterConfigApplier)
        self.assertIsInstance(stager, ClusterSecretStager)

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_configuration_error(self):
        self.assertEqual(cli.main(["--mode", "agent"]), 1)

    @mock.patch.dict(os.environ, {}, clear=True)
    @mock.patch("frp_operator.cli.KubernetesStore")
    def test_unexpected_error(self, mock_store_class):
        mock_store_class.side_effect = RuntimeError("Kubernetes configuration error")
        self.assertEqual(cli.main(["--reconcile-once"]), 1)


if __name__ == "__main__":
    unittest.main()
