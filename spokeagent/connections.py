"""Reports the state of gateway connections to the hub add-on."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .kube import (
    SUBMARINER_ADDON_NAME,
    AddOnStore,
    Condition,
    ConditionStatus,
    EventRecorder,
    NotFoundError,
    ObjectStore,
    go_quote,
)

SUBMARINER_CONNECTION_DEGRADED = "SubmarinerConnectionDegraded"


class HAStatus(str, Enum):
    ACTIVE = "active"
    PASSIVE = "passive"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class Connection:
    status: ConnectionStatus
    cluster_id: str


@dataclass
class GatewayStatus:
    ha_status: HAStatus
    connections: list[Connection] = field(default_factory=list)


@dataclass
class Submariner:
    name: str
    namespace: str
    gateways: list[GatewayStatus] | None = None


def _split_key(key: str) -> tuple[str, str]:
    namespace, sep, name = key.partition("/")
    return (namespace, name) if sep else ("", namespace)


class ConnectionsStatusController:
    """Reflects the Submariner resource's connection status onto the hub add-on."""

    name = "SubmarinerConnectionsStatusController"

    def __init__(
        self,
        cluster_name: str,
        addon_client: AddOnStore,
        submariner_lister: ObjectStore,
        recorder: EventRecorder,
    ) -> None:
        self.cluster_name = cluster_name
        self.addon_client = addon_client
        self.submariner_lister = submariner_lister
        self.recorder = recorder

    def sync(self, queue_key: str) -> None:
        namespace, name = _split_key(queue_key)
        try:
            submariner = self.submariner_lister.get(namespace, name)
        except NotFoundError:
            # the resource may have been deleted
            return

        conditions, updated = self.addon_client.update_condition(
            self.cluster_name,
            SUBMARINER_ADDON_NAME,
            self.check_submariner_connections(submariner),
        )
        if updated:
            self.recorder.event(
                "ManagedClusterAddOnStatusUpdated",
                f"Updated status conditions:  {conditions!r}",
            )

    def check_submariner_connections(self, submariner: Submariner) -> Condition:
        cluster = go_quote(self.cluster_name)
        connected: list[str] = []
        unconnected: list[str] = []

        for gateway in submariner.gateways or []:
            if gateway.ha_status != HAStatus.ACTIVE:
                continue
            for connection in gateway.connections:
                remote = go_quote(connection.cluster_id)
                if connection.status != ConnectionStatus.CONNECTED:
                    status = ConnectionStatus(connection.status).value
                    unconnected.append(
                        f"The connection between clusters {cluster} and {remote} "
                        f"is not established (status={status})"
                    )
                else:
                    connected.append(
                        f"The connection between clusters {cluster} and {remote} is established"
                    )

        if not connected and not unconnected:
            return Condition(
                type=SUBMARINER_CONNECTION_DEGRADED,
                status=ConditionStatus.TRUE,
                reason="ConnectionsNotEstablished",
                message="There are no connections on gateways",
            )

        if unconnected:
            return Condition(
                type=SUBMARINER_CONNECTION_DEGRADED,
                status=ConditionStatus.TRUE,
                reason="ConnectionsDegraded",
                message="\n".join(connected + unconnected),
            )

        return Condition(
            type=SUBMARINER_CONNECTION_DEGRADED,
            status=ConditionStatus.FALSE,
            reason="ConnectionsEstablished",
            message="\n".join(connected),
        )