"""Reports the deployment state of the operator and its daemon sets to the hub add-on."""

from __future__ import annotations

from dataclasses import dataclass

from .kube import (
    SUBMARINER_ADDON_NAME,
    AddOnStore,
    Condition,
    ConditionStatus,
    EventRecorder,
    NotFoundError,
    ObjectStore,
)

SUBSCRIPTION_NAME = "submariner"
OPERATOR_NAME = "submariner-operator"
GATEWAY_NAME = "submariner-gateway"
ROUTE_AGENT_NAME = "submariner-routeagent"

SUBMARINER_AGENT_DEGRADED = "SubmarinerAgentDegraded"


@dataclass
class Subscription:
    name: str
    namespace: str
    installed_csv: str = ""
    starting_csv: str = ""
    channel: str = ""
    catalog_source: str = ""
    catalog_source_namespace: str = ""


@dataclass
class Deployment:
    name: str
    namespace: str
    available_replicas: int = 0


@dataclass
class DaemonSet:
    name: str
    namespace: str
    desired_number_scheduled: int = 0
    number_unavailable: int = 0


class DeploymentStatusController:
    """Watches the operator deployment and daemon sets and reports their health to the hub."""

    name = "SubmarinerAgentStatusController"

    def __init__(
        self,
        cluster_name: str,
        namespace: str,
        addon_client: AddOnStore,
        daemonset_lister: ObjectStore,
        deployment_lister: ObjectStore,
        subscription_lister: ObjectStore,
        recorder: EventRecorder,
    ) -> None:
        self.cluster_name = cluster_name
        self.namespace = namespace
        self.addon_client = addon_client
        self.daemonset_lister = daemonset_lister
        self.deployment_lister = deployment_lister
        self.subscription_lister = subscription_lister
        self.recorder = recorder

    def sync(self) -> None:
        try:
            subscription: Subscription = self.subscription_lister.get(
                self.namespace, SUBSCRIPTION_NAME
            )
        except NotFoundError:
            # the subscription may have been deleted
            return

        problems: list[tuple[str, str]] = []

        if not subscription.installed_csv:
            starting_csv = subscription.starting_csv or "default"
            channel = subscription.channel or "default"
            problems.append(
                (
                    "CSVNotInstalled",
                    f"The submariner-operator CSV ({starting_csv}) is not installed from "
                    f"channel ({channel}) in catalog source "
                    f"({subscription.catalog_source_namespace}/{subscription.catalog_source})",
                )
            )

        problems.extend(self._check_operator_deployment())
        problems.extend(self._check_gateway_daemonset())
        problems.extend(self._check_route_agent_daemonset())

        condition = Condition(
            type=SUBMARINER_AGENT_DEGRADED,
            status=ConditionStatus.FALSE,
            reason="SubmarinerAgentDeployed",
            message=f"Submariner ({subscription.installed_csv}) is deployed on managed cluster.",
        )
        if problems:
            reasons, messages = zip(*problems)
            condition.status = ConditionStatus.TRUE
            condition.reason = ",".join(reasons)
            condition.message = "\n".join(messages)

        conditions, updated = self.addon_client.update_condition(
            self.cluster_name, SUBMARINER_ADDON_NAME, condition
        )
        if updated:
            self.recorder.event(
                "ManagedClusterAddOnStatusUpdated",
                f"Updated status conditions:  {conditions!r}",
            )

    def _check_operator_deployment(self) -> list[tuple[str, str]]:
        try:
            operator: Deployment = self.deployment_lister.get(self.namespace, OPERATOR_NAME)
        except NotFoundError:
            return [("NoOperatorDeployment", "The submariner operator deployment does not exist")]
        if operator.available_replicas == 0:
            return [("NoOperatorAvailable", "There is no submariner operator replica available")]
        return []

    def _check_gateway_daemonset(self) -> list[tuple[str, str]]:
        try:
            gateways: DaemonSet = self.daemonset_lister.get(self.namespace, GATEWAY_NAME)
        except NotFoundError:
            return [("NoGatewayDaemonSet", "The gateway daemon set does not exist")]
        problems = []
        if gateways.desired_number_scheduled == 0:
            problems.append(("NoScheduledGateways", "There are no nodes to run the gateways"))
        if gateways.number_unavailable != 0:
            problems.append(
                (
                    "GatewaysUnavailable",
                    f"There are {gateways.number_unavailable} unavailable gateways",
                )
            )
        return problems

    def _check_route_agent_daemonset(self) -> list[tuple[str, str]]:
        try:
            route_agent: DaemonSet = self.daemonset_lister.get(self.namespace, ROUTE_AGENT_NAME)
        except NotFoundError:
            return [("NoRouteAgentDaemonSet", "The route agents are not found")]
        if route_agent.number_unavailable != 0:
            return [
                (
                    "RouteAgentsUnavailable",
                    f"There are {route_agent.number_unavailable} unavailable route agents",
                )
            ]
        return []