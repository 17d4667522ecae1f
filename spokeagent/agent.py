"""Options and entry point of the agent that runs on a managed cluster."""

from __future__ import annotations

import argparse
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Sequence

from .config_controller import (
    ManagedClusterInfo,
    SubmarinerConfig,
    SubmarinerConfigController,
    SubmarinerConfigStore,
)
from .connections import ConnectionsStatusController
from .deployment import DeploymentStatusController
from .gateways import GatewaysStatusController
from .kube import AddOnStore, EventRecorder, NodeStore, ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_INSTALLATION_NAMESPACE = "submariner-operator"
SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


@dataclass
class _Hub:
    addons: AddOnStore = field(default_factory=AddOnStore)
    configs: SubmarinerConfigStore = field(default_factory=SubmarinerConfigStore)


@dataclass
class _Spoke:
    nodes: NodeStore = field(default_factory=NodeStore)
    daemonsets: ObjectStore = field(default_factory=ObjectStore)
    deployments: ObjectStore = field(default_factory=ObjectStore)
    subscriptions: ObjectStore = field(default_factory=ObjectStore)
    submariners: ObjectStore = field(default_factory=ObjectStore)


class _NoCloudProviderFactory:
    """Factory used when no cloud credentials are available."""

    def get(
        self,
        managed_cluster_info: ManagedClusterInfo,
        config: SubmarinerConfig,
        recorder: EventRecorder,
    ) -> Any:
        raise RuntimeError(
            f"no cloud provider available for platform {managed_cluster_info.platform!r}"
        )


@dataclass
class AgentOptions:
    """Settings of the agent; flags bind straight onto these attributes."""

    installation_namespace: str = ""
    hub_kubeconfig_file: str = ""
    cluster_name: str = ""
    namespace_file: str = SERVICE_ACCOUNT_NAMESPACE_FILE
    sync_interval: float = 1.0

    def add_flags(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--hub-kubeconfig",
            dest="hub_kubeconfig_file",
            default=self.hub_kubeconfig_file,
            help="Location of kubeconfig file to connect to hub cluster.",
        )
        parser.add_argument(
            "--cluster-name",
            dest="cluster_name",
            default=self.cluster_name,
            help="Name of managed cluster.",
        )

    def complete(self) -> None:
        """Determine the namespace the agent is installed in."""
        namespace = ""
        try:
            namespace = Path(self.namespace_file).read_text(encoding="utf-8").strip()
        except OSError:
            pass
        self.installation_namespace = namespace or DEFAULT_INSTALLATION_NAMESPACE

    def validate(self) -> None:
        if not self.hub_kubeconfig_file:
            raise ValueError("hub-kubeconfig is required")
        if not self.cluster_name:
            raise ValueError("cluster name is empty")

    def build_controllers(
        self, hub: Any, spoke: Any, cloud_provider_factory: Any, recorder: EventRecorder
    ) -> list[Any]:
        """Create the config, gateways, deployment and connections controllers."""
        return [
            SubmarinerConfigController(
                self.cluster_name,
                spoke.nodes,
                hub.configs,
                hub.addons,
                cloud_provider_factory,
                recorder,
            ),
            GatewaysStatusController(self.cluster_name, hub.addons, spoke.nodes, recorder),
            DeploymentStatusController(
                self.cluster_name,
                self.installation_namespace,
                hub.addons,
                spoke.daemonsets,
                spoke.deployments,
                spoke.subscriptions,
                recorder,
            ),
            ConnectionsStatusController(
                self.cluster_name, hub.addons, spoke.submariners, recorder
            ),
        ]

    def run_agent(
        self,
        hub: Any,
        spoke: Any,
        cloud_provider_factory: Any,
        recorder: EventRecorder,
        stop_event: threading.Event,
    ) -> None:
        """Reconcile repeatedly until ``stop_event`` is set."""
        self.complete()
        self.validate()

        controllers = self.build_controllers(hub, spoke, cloud_provider_factory, recorder)
        while True:
            for name, sync in self._sync_calls(controllers, spoke):
                try:
                    sync()
                except Exception:  # noqa: BLE001 - a failed sync is retried next round
                    logger.warning("%s: sync failed", name, exc_info=True)
            if stop_event.wait(self.sync_interval):
                return

    def _sync_calls(
        self, controllers: Sequence[Any], spoke: Any
    ) -> list[tuple[str, Callable[[], None]]]:
        calls: list[tuple[str, Callable[[], None]]] = []
        for controller in controllers:
            if isinstance(controller, ConnectionsStatusController):
                for submariner in spoke.submariners.list():
                    if submariner.namespace != self.installation_namespace:
                        continue
                    key = f"{submariner.namespace}/{submariner.name}"
                    calls.append(
                        (controller.name, lambda c=controller, k=key: c.sync(k))
                    )
            else:
                calls.append((controller.name, controller.sync))
        return calls


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        prog="spokeagent", description="Run the add-on agent on a managed cluster."
    )
    options = AgentOptions()
    options.add_flags(parser)
    parser.parse_args(argv, namespace=options)

    options.complete()
    try:
        options.validate()
    except ValueError as exc:
        parser.error(str(exc))

    stop_event = threading.Event()
    try:
        options.run_agent(
            _Hub(),
            _Spoke(),
            _NoCloudProviderFactory(),
            EventRecorder("submariner-addon-agent"),
            stop_event,
        )
    except KeyboardInterrupt:
        stop_event.set()
    return 0