"""Command-line interface for the frp operator.

This module serves as the entrypoint for the frp-operator application.
"""

import argparse
import logging
import signal
import sys
import threading

from frp_operator import __description__, __version__
from frp_operator.appliers import ClusterConfigApplier, ConfigApplier, FileConfigApplier
from frp_operator.config import OperatorConfig, OperatorMode, ServiceStrategy
from frp_operator.controllers import ClientController, IngressController, ServiceController
from frp_operator.exceptions import ConfigurationError, ProcessError
from frp_operator.frpc.process import FrpcProcess
from frp_operator.kubernetes import KubernetesStore
from frp_operator.scheduler import ReconcileLoop, Scheduler
from frp_operator.staging import ClusterSecretStager, FileSecretStager, SecretStager
from frp_operator.translate import client_config_from_settings


def setup_logging(verbose: bool = False) -> None:
    """Set up logging configuration.

    Args:
        verbose: Whether to enable verbose logging.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(level=log_level, format=log_format, stream=sys.stdout)
    # The kubernetes client logs every request body at DEBUG
    logging.getLogger("kubernetes").setLevel(logging.INFO)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        args: Command-line arguments to parse. If None, sys.argv will be used.

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(prog="frp-operator", description=__description__)

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in OperatorMode],
        help="Run frpc as a managed Deployment (cluster) or as a child process (agent) "
             "(overrides FRP_OPERATOR_MODE)",
    )

    parser.add_argument("--server-addr", help="frps address, agent mode (overrides FRP_OPERATOR_SERVER_ADDR)")

    parser.add_argument("--server-port", type=int, help="frps port, agent mode (overrides FRP_OPERATOR_SERVER_PORT)")

    parser.add_argument(
        "--webserver-addr", help="frpc admin webserver address, agent mode (overrides FRP_OPERATOR_WEBSERVER_ADDR)"
    )

    parser.add_argument(
        "--webserver-port",
        type=int,
        help="frpc admin webserver port, agent mode; required to reload frpc (overrides FRP_OPERATOR_WEBSERVER_PORT)",
    )

    parser.add_argument("--token", help="frps authentication token, agent mode (overrides AUTH_TOKEN)")

    parser.add_argument("--namespace", help="Specific namespace to watch (overrides FRP_OPERATOR_NAMESPACE)")

    parser.add_argument("--ingress-class", help="Ingress class to handle (overrides FRP_OPERATOR_INGRESS_CLASS)")

    parser.add_argument(
        "--load-balancer-class",
        help="Service loadBalancerClass to handle (overrides FRP_OPERATOR_LOAD_BALANCER_CLASS)",
    )

    parser.add_argument(
        "--service-strategy",
        choices=[strategy.value for strategy in ServiceStrategy],
        help="How Services become proxies, default depends on the mode (overrides FRP_OPERATOR_SERVICE_STRATEGY)",
    )

    parser.add_argument("--config-root", help="frpc configuration directory (overrides FRP_OPERATOR_CONFIG_ROOT)")

    parser.add_argument(
        "--frpc-binary", help="Path to the frpc binary, agent mode (overrides FRP_OPERATOR_FRPC_BINARY)"
    )

    parser.add_argument(
        "--interval", type=int, help="Resync interval in seconds (overrides FRP_OPERATOR_RECONCILIATION_INTERVAL)"
    )

    parser.add_argument("--reconcile-once", action="store_true", help="Reconcile every object once and exit")

    return parser.parse_args(args)


def load_config(parsed_args: argparse.Namespace) -> OperatorConfig:
    """Build the configuration from the environment and the command line.

    Raises:
        ConfigurationError: If the resulting configuration is invalid.
    """
    try:
        return OperatorConfig.from_env(
            mode=parsed_args.mode,
            server_addr=parsed_args.server_addr,
            server_port=parsed_args.server_port,
            webserver_addr=parsed_args.webserver_addr,
            webserver_port=parsed_args.webserver_port,
            auth_token=parsed_args.token,
            namespace=parsed_args.namespace,
            ingress_class=parsed_args.ingress_class,
            load_balancer_class=parsed_args.load_balancer_class,
            service_strategy=parsed_args.service_strategy,
            config_root=parsed_args.config_root,
            frpc_binary=parsed_args.frpc_binary,
            reconciliation_interval=parsed_args.interval,
        )
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def build_loops(
    config: OperatorConfig, store: KubernetesStore, applier: ConfigApplier, stager: SecretStager
) -> list[ReconcileLoop]:
    """Create one reconcile loop per watched kind.

    Args:
        config: The operator configuration.
        store: Access to the Kubernetes API.
        applier: Applies proxy configurations to the tunnel client.
        stager: Stages TLS material for the tunnel client.

    Returns:
        The loops, Clients first when running in cluster mode.
    """
    loops = []
    if config.mode == OperatorMode.CLUSTER:
        clients = ClientController(store, config)
        loops.append(ReconcileLoop("Client", store.clients, clients.reconcile, config.workers, config.error_backoff))

    ingresses = IngressController(store, config, applier, stager)
    loops.append(ReconcileLoop("Ingress", store.ingresses, ingresses.reconcile, config.workers, config.error_backoff))

    services = ServiceController(store, config, applier, stager)
    service_loop = ReconcileLoop("Service", store.services, services.reconcile, config.workers, config.error_backoff)
    if services.per_replica:
        service_loop.add_watch(store.pods, services.services_for_pod)
    loops.append(service_loop)

    return loops


def watch_process(process: FrpcProcess, stop_event: threading.Event) -> None:
    """Stop the operator when frpc exits."""
    process.wait()
    stop_event.set()


def main(args: list[str] | None = None) -> int:
    """Main entry point for the frp-operator application.

    Args:
        args: Command-line arguments. If None, sys.argv will be used.

    Returns:
        Exit code.
    """
    process = None
    try:
        parsed_args = parse_args(args)
        setup_logging(parsed_args.verbose)
        logger = logging.getLogger(__name__)
        logger.info(f"Starting frp-operator {__version__}")

        config = load_config(parsed_args)

        logger.info(
            f"Configuration: mode={config.mode.value}, "
            f"namespace={config.namespace or 'all'}, "
            f"ingress_class={config.ingress_class}, "
            f"load_balancer_class={config.load_balancer_class}, "
            f"service_strategy={config.effective_service_strategy.value}, "
            f"config_root={config.config_root}, "
            f"interval={config.reconciliation_interval}s"
        )

        store = KubernetesStore(namespace=config.namespace)

        if config.mode == OperatorMode.AGENT:
            process = FrpcProcess(
                config.frpc_binary, config.root_config_path, reload_enabled=config.webserver_port is not None
            )
            process.write_config(client_config_from_settings(config))
            applier = FileConfigApplier(config, None if parsed_args.reconcile_once else process)
            stager = FileSecretStager(config.cert_root)
        else:
            applier = ClusterConfigApplier(store, config)
            stager = ClusterSecretStager(store)

        scheduler = Scheduler(build_loops(config, store, applier, stager))

        if parsed_args.reconcile_once:
            logger.info("Running reconciliation once")
            scheduler.reconcile()
            return 0

        stop_event = threading.Event()

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
            stop_event.set()

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        if process is not None:
            process.start()
            threading.Thread(target=watch_process, args=(process, stop_event), name="frpc", daemon=True).start()

        logger.info("Running continuous reconciliation")
        scheduler.run(stop_event)

        if process is not None and not process.is_running():
            logger.error("frpc is no longer running")
            return 1

    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted by user")
    except ConfigurationError as e:
        logging.getLogger(__name__).error(f"Configuration error: {e}")
        return 1
    except ProcessError as e:
        logging.getLogger(__name__).error(f"frpc error: {e}")
        return 1
    except Exception as e:
        logging.getLogger(__name__).error(f"An unexpected error occurred: {e}")
        return 1
    finally:
        if process is not None:
            process.stop()

    logging.getLogger(__name__).info("frp-operator exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
