"""Reports whether worker nodes are labeled as gateways."""

from __future__ import annotations

from .kube import (
    SUBMARINER_ADDON_NAME,
    WORKER_NODE_LABEL,
    AddOnStore,
    Condition,
    ConditionStatus,
    EventRecorder,
    Node,
    NodeStore,
    Operator,
    Requirement,
    go_quote,
)

SUBMARINER_GATEWAY_LABEL = "submariner.io/gateway"
SUBMARINER_GATEWAY_NODES_LABELED = "SubmarinerGatewayNodesLabeled"


class GatewaysStatusController:
    """Watches nodes on the managed cluster and reports gateway labeling to the hub add-on."""

    name = "SubmarinerAgentStatusController"

    def __init__(
        self,
        cluster_name: str,
        addon_client: AddOnStore,
        node_lister: NodeStore,
        recorder: EventRecorder,
    ) -> None:
        self.cluster_name = cluster_name
        self.addon_client = addon_client
        self.node_lister = node_lister
        self.recorder = recorder

    def accepts(self, node: Node) -> bool:
        """Only changes to worker nodes trigger a sync."""
        return WORKER_NODE_LABEL in node.labels

    def sync(self) -> None:
        nodes = self.node_lister.list(
            Requirement(SUBMARINER_GATEWAY_LABEL, Operator.EQUALS, "true")
        )

        condition = Condition(
            type=SUBMARINER_GATEWAY_NODES_LABELED,
            status=ConditionStatus.FALSE,
            reason="SubmarinerGatewayNodesUnlabeled",
            message=f"There are no nodes with label {go_quote(SUBMARINER_GATEWAY_LABEL)}",
        )

        if nodes:
            names = ",".join(sorted(node.name for node in nodes))
            condition.status = ConditionStatus.TRUE
            condition.reason = "SubmarinerGatewayNodesLabeled"
            condition.message = (
                f"The nodes {go_quote(names)} are labeled with {go_quote(SUBMARINER_GATEWAY_LABEL)}"
            )

        conditions, updated = self.addon_client.update_condition(
            self.cluster_name, SUBMARINER_ADDON_NAME, condition
        )
        if updated:
            self.recorder.event(
                "ManagedClusterAddOnStatusUpdated",
                f"Updated status conditions:  {conditions!r}",
            )