"""Applies the hub's SubmarinerConfig to the managed cluster: gateway labeling and cloud preparation."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Protocol, TypeVar

from .gateways import SUBMARINER_GATEWAY_LABEL
from .kube import (
    SUBMARINER_ADDON_NAME,
    WORKER_NODE_LABEL,
    AddOn,
    AddOnStore,
    Condition,
    ConditionStatus,
    EventRecorder,
    Node,
    NodeStore,
    NotFoundError,
    Operator,
    Requirement,
    _VersionedStore,
    go_quote,
    is_status_condition_true,
    retry_on_conflict,
    set_status_condition,
)

SUBMARINER_CONFIG_NAME = "submariner"
SUBMARINER_GATEWAY_CONDITION = "SubmarinerGatewaysLabeled"
SUBMARINER_UDP_PORT_LABEL = "gateway.submariner.io/udp-port"
ENV_PREPARED_CONDITION = "SubmarinerClusterEnvironmentPrepared"

# Zone label used to spread gateways; empty means every node falls in the "unknown" zone.
DEFAULT_ZONE_LABEL = ""

T = TypeVar("T")


@dataclass
class ManagedClusterInfo:
    platform: str = ""
    cluster_name: str = ""
    vendor: str = ""
    region: str = ""
    infra_id: str = ""


@dataclass
class SubmarinerConfig:
    name: str
    namespace: str
    gateways: int = 1
    ipsec_natt_port: int = 4500
    managed_cluster_info: ManagedClusterInfo = field(default_factory=ManagedClusterInfo)
    conditions: list[Condition] = field(default_factory=list)
    deletion_timestamp: datetime | None = None
    resource_version: int = 0


class SubmarinerConfigStore(_VersionedStore[SubmarinerConfig]):
    """Hub-side store of SubmarinerConfig resources."""

    def get(self, namespace: str, name: str) -> SubmarinerConfig:
        return self._fetch((namespace, name))

    def create(self, config: SubmarinerConfig) -> SubmarinerConfig:
        return self._create((config.namespace, config.name), config)

    def update(self, config: SubmarinerConfig) -> SubmarinerConfig:
        return self._update((config.namespace, config.name), config)

    def update_condition(
        self, namespace: str, name: str, condition: Condition
    ) -> tuple[list[Condition], bool]:
        """Set a status condition, retrying on conflicts.

        Returns the resulting conditions and whether the config was updated.
        """

        def attempt() -> tuple[list[Condition], bool]:
            config = self.get(namespace, name)
            if not set_status_condition(config.conditions, condition):
                return config.conditions, False
            stored = self._update((namespace, name), config)
            return stored.conditions, True

        return retry_on_conflict(attempt)


class _CloudProvider(Protocol):
    def prepare_submariner_cluster_env(self) -> None: ...

    def cleanup_submariner_cluster_env(self) -> None: ...


class _CloudProviderFactory(Protocol):
    def get(
        self,
        managed_cluster_info: ManagedClusterInfo,
        config: SubmarinerConfig,
        recorder: EventRecorder,
    ) -> _CloudProvider: ...


class _GatewayError(Exception):
    """Gateway reconciliation failed; carries the condition to report."""

    def __init__(self, condition: Condition, error: Exception) -> None:
        super().__init__(str(error))
        self.condition = condition
        self.error = error


def _try_each(func: Callable[[T], None], items: Iterable[T]) -> list[Exception]:
    errors: list[Exception] = []
    for item in items:
        try:
            func(item)
        except Exception as exc:  # noqa: BLE001 - errors are aggregated
            errors.append(exc)
    return errors


def _raise_aggregate(errors: Iterable[Exception | None]) -> None:
    found = [error for error in errors if error is not None]
    if not found:
        return
    if len(found) == 1:
        raise found[0]
    raise RuntimeError("\n".join(str(error) for error in found))


def failed_condition(message: str) -> Condition:
    return Condition(
        type=SUBMARINER_GATEWAY_CONDITION,
        status=ConditionStatus.FALSE,
        reason="Failure",
        message=message,
    )


def success_condition(gateway_names: list[str]) -> Condition:
    return Condition(
        type=SUBMARINER_GATEWAY_CONDITION,
        status=ConditionStatus.TRUE,
        reason="Success",
        message=(
            f"{len(gateway_names)} node(s) ({go_quote(','.join(gateway_names))}) "
            "are labeled as gateways"
        ),
    )


class SubmarinerConfigController:
    """Watches the hub's SubmarinerConfig and applies it on the managed cluster."""

    name = "SubmarinerAgentConfigController"

    def __init__(
        self,
        cluster_name: str,
        node_client: NodeStore,
        config_client: SubmarinerConfigStore,
        addon_client: AddOnStore,
        cloud_provider_factory: _CloudProviderFactory,
        recorder: EventRecorder,
    ) -> None:
        self.cluster_name = cluster_name
        self.node_client = node_client
        self.config_client = config_client
        self.addon_client = addon_client
        self.cloud_provider_factory = cloud_provider_factory
        self.recorder = recorder

    def accepts_addon(self, addon: AddOn) -> bool:
        return addon.name == SUBMARINER_ADDON_NAME

    def accepts_config(self, config: SubmarinerConfig) -> bool:
        return config.name == SUBMARINER_CONFIG_NAME

    def accepts_node(self, node: Node) -> bool:
        """Only changes to worker nodes trigger a sync."""
        return WORKER_NODE_LABEL in node.labels

    def sync(self) -> None:
        try:
            addon = self.addon_client.get(self.cluster_name, SUBMARINER_ADDON_NAME)
        except NotFoundError:
            return

        try:
            config = self.config_client.get(self.cluster_name, SUBMARINER_CONFIG_NAME)
        except NotFoundError:
            return

        platform = config.managed_cluster_info.platform
        if not platform:
            return

        if addon.deletion_timestamp is not None:
            condition = Condition(
                type=SUBMARINER_GATEWAY_CONDITION,
                status=ConditionStatus.FALSE,
                reason="ManagedClusterAddOnDeleted",
                message="There are no nodes labeled as gateways",
            )
            error: Exception | None = None
            try:
                self._cleanup_cluster_environment(config)
            except Exception as exc:  # noqa: BLE001 - reported then re-raised
                error = exc
                condition = failed_condition(str(exc))
            self._report(config, condition, error)
            return

        if config.deletion_timestamp is not None:
            self._cleanup_cluster_environment(config)
            return

        if platform == "AWS":
            # gateways on AWS are configured from the hub; only report them
            self._update_gateway_status(config)
            return

        if platform == "GCP":
            self._prepare_for_gcp(config)
            return

        error = None
        try:
            condition = self.ensure_gateways(config)
        except _GatewayError as exc:
            condition, error = exc.condition, exc.error
        self._report(config, condition, error)

    def _report(
        self, config: SubmarinerConfig, condition: Condition, error: Exception | None
    ) -> None:
        update_error: Exception | None = None
        try:
            self._update_config_status(config, condition)
        except Exception as exc:  # noqa: BLE001 - the first error wins
            update_error = exc
        if error is not None:
            raise error
        if update_error is not None:
            raise update_error

    def _prepare_for_gcp(self, config: SubmarinerConfig) -> None:
        if not is_status_condition_true(config.conditions, ENV_PREPARED_CONDITION):
            errors: list[Exception] = []
            prepared_error: Exception | None = None
            try:
                provider = self.cloud_provider_factory.get(
                    config.managed_cluster_info, config, self.recorder
                )
                provider.prepare_submariner_cluster_env()
            except Exception as exc:  # noqa: BLE001 - reported in the condition
                prepared_error = exc

            condition = Condition(
                type=ENV_PREPARED_CONDITION,
                status=ConditionStatus.TRUE,
                reason="SubmarinerClusterEnvPrepared",
                message="Submariner cluster environment was prepared",
            )
            if prepared_error is not None:
                condition.status = ConditionStatus.FALSE
                condition.reason = "SubmarinerClusterEnvPreparationFailed"
                condition.message = (
                    f"Failed to prepare submariner cluster environment: {prepared_error}"
                )
                errors.append(prepared_error)

            updated = False
            try:
                _, updated = self.config_client.update_condition(
                    config.namespace, config.name, condition
                )
            except Exception as exc:  # noqa: BLE001 - aggregated
                errors.append(exc)

            if updated:
                self.recorder.event(
                    "SubmarinerClusterEnvPrepared",
                    "submariner cluster environment was prepared for managed cluster "
                    f"{config.namespace}",
                )

            _raise_aggregate(errors)

        self._update_gateway_status(config)

    def _cleanup_cluster_environment(self, config: SubmarinerConfig) -> None:
        platform = config.managed_cluster_info.platform
        if platform == "GCP":
            try:
                provider = self.cloud_provider_factory.get(
                    config.managed_cluster_info, config, self.recorder
                )
                provider.cleanup_submariner_cluster_env()
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to clean up the submariner cluster environment: {exc}"
                ) from exc
            return

        if platform != "AWS":
            try:
                self._remove_all_gateways()
            except Exception as exc:
                raise RuntimeError(f"Failed to unlabel the gateway nodes: {exc}") from exc

    def _update_config_status(self, config: SubmarinerConfig, condition: Condition) -> None:
        conditions, updated = self.config_client.update_condition(
            config.namespace, config.name, condition
        )
        if updated:
            self.recorder.event(
                "SubmarinerConfigStatusUpdated", f"Updated status conditions:  {conditions!r}"
            )

    def ensure_gateways(self, config: SubmarinerConfig) -> Condition:
        """Label or unlabel nodes so the desired number of gateways exists."""
        if config.gateways < 1:
            return Condition(
                type=SUBMARINER_GATEWAY_CONDITION,
                status=ConditionStatus.FALSE,
                reason="InvalidInput",
                message="The desired number of gateways must be at least 1",
            )

        try:
            current = self.node_client.list(
                Requirement(SUBMARINER_GATEWAY_LABEL, Operator.EXISTS)
            )
        except Exception as exc:
            raise _GatewayError(failed_condition(f"Error retrieving nodes: {exc}"), exc) from exc

        current_names = [node.name for node in current]
        required = config.gateways - len(current)

        try:
            if required == 0:
                # unchanged count: make sure the gateways are fully labeled
                _raise_aggregate(_try_each(lambda node: self._label_node(config, node), current))
                updated_names = current_names
            elif required > 0:
                updated_names = self._add_gateways(config, required)
            else:
                removed = set(self._remove_gateways(current, -required))
                updated_names = [name for name in current_names if name not in removed]
        except Exception as exc:
            raise _GatewayError(
                failed_condition(f"Unable to label the gateway nodes: {exc}"), exc
            ) from exc

        if not updated_names:
            return Condition(
                type=SUBMARINER_GATEWAY_CONDITION,
                status=ConditionStatus.FALSE,
                reason="InsufficientNodes",
                message=(
                    "Insufficient number of worker nodes to satisfy the desired number of gateways"
                ),
            )

        return success_condition(sorted(updated_names))

    def _label_node(self, config: SubmarinerConfig, node: Node) -> None:
        natt_port = str(config.ipsec_natt_port)
        if (
            SUBMARINER_GATEWAY_LABEL in node.labels
            and node.labels.get(SUBMARINER_UDP_PORT_LABEL) == natt_port
        ):
            return

        def mutate(target: Node) -> None:
            target.labels[SUBMARINER_GATEWAY_LABEL] = "true"
            target.labels[SUBMARINER_UDP_PORT_LABEL] = natt_port

        self._update_node(node, mutate)

    def _unlabel_node(self, node: Node) -> None:
        if (
            SUBMARINER_GATEWAY_LABEL not in node.labels
            and SUBMARINER_UDP_PORT_LABEL not in node.labels
        ):
            return

        def mutate(target: Node) -> None:
            target.labels.pop(SUBMARINER_GATEWAY_LABEL, None)
            target.labels.pop(SUBMARINER_UDP_PORT_LABEL, None)

        self._update_node(node, mutate)

    def _update_node(self, node: Node, mutate: Callable[[Node], None]) -> None:
        name = node.name
        cached: Node | None = node

        def attempt() -> None:
            nonlocal cached
            target = cached if cached is not None else self.node_client.get(name)
            cached = None
            target = copy.deepcopy(target)
            mutate(target)
            self.node_client.update(target)

        retry_on_conflict(attempt)

    def _add_gateways(self, config: SubmarinerConfig, expected: int) -> list[str]:
        gateways = self.find_gateways_with_zone(expected, DEFAULT_ZONE_LABEL)
        errors = _try_each(lambda node: self._label_node(config, node), gateways)
        _raise_aggregate(errors)
        return [node.name for node in gateways]

    def _remove_gateways(self, gateways: list[Node], count: int) -> list[str]:
        targets = gateways[:count]
        errors = _try_each(self._unlabel_node, targets)
        _raise_aggregate(errors)
        return [node.name for node in targets]

    def _remove_all_gateways(self) -> None:
        gateways = self.node_client.list(Requirement(SUBMARINER_GATEWAY_LABEL, Operator.EXISTS))
        self._remove_gateways(gateways, len(gateways))

    def find_gateways_with_zone(self, expected: int, zone_label: str) -> list[Node]:
        """Pick ``expected`` unlabeled workers, spreading them across zones."""
        workers = self.node_client.list(
            Requirement(WORKER_NODE_LABEL, Operator.EXISTS),
            Requirement(SUBMARINER_GATEWAY_LABEL, Operator.DOES_NOT_EXIST),
        )
        if len(workers) < expected:
            return []

        zone_nodes: dict[str, list[Node]] = {}
        for worker in workers:
            zone_nodes.setdefault(worker.labels.get(zone_label, "unknown"), []).append(worker)

        gateways: list[Node] = []
        index = 0
        while len(gateways) < expected:
            for nodes in zone_nodes.values():
                if len(gateways) == expected:
                    break
                if index < len(nodes):
                    gateways.append(nodes[index])
            index += 1
        return gateways

    def _update_gateway_status(self, config: SubmarinerConfig) -> None:
        gateways = self.node_client.list(
            Requirement(WORKER_NODE_LABEL, Operator.EXISTS),
            Requirement(SUBMARINER_GATEWAY_LABEL, Operator.EXISTS),
        )
        names = [node.name for node in gateways]

        if config.gateways != len(gateways):
            condition = Condition(
                type=SUBMARINER_GATEWAY_CONDITION,
                status=ConditionStatus.FALSE,
                reason="InsufficientNodes",
                message=(
                    f"The {len(names)} worker nodes labeled as gateways ({go_quote(','.join(names))}) "
                    f"does not match the desired number {config.gateways}"
                ),
            )
        else:
            condition = success_condition(names)

        self._update_config_status(config, condition)