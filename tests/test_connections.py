import pytest

from spokeagent.connections import (
    Connection,
    ConnectionsStatusController,
    ConnectionStatus,
    GatewayStatus,
    HAStatus,
    Submariner,
)
from spokeagent.kube import (
    AddOn,
    AddOnStore,
    ConditionStatus,
    ConflictError,
    EventRecorder,
    ObjectStore,
    find_status_condition,
)

CLUSTER = "test"
NS = "submariner-ns"
KEY = f"{NS}/submariner"
TYPE = "SubmarinerConnectionDegraded"


def new_submariner():
    return Submariner(
        name="submariner",
        namespace=NS,
        gateways=[
            GatewayStatus(
                HAStatus.ACTIVE,
                [
                    Connection(ConnectionStatus.CONNECTED, "cluster1"),
                    Connection(ConnectionStatus.CONNECTED, "cluster2"),
                ],
            ),
            GatewayStatus(HAStatus.PASSIVE, [Connection(ConnectionStatus.ERROR, "cluster1")]),
        ],
    )


def _fail_once(exc):
    calls = {"n": 0}

    def hook(obj):
        calls["n"] += 1
        if calls["n"] == 1:
            raise exc

    return hook


def make(submariner):
    lister = ObjectStore([submariner] if submariner else [])
    addons = AddOnStore()
    addons.create(AddOn("submariner", CLUSTER))
    recorder = EventRecorder("test")
    return ConnectionsStatusController(CLUSTER, addons, lister, recorder), lister, addons


def await_condition(addons, status, reason):
    cond = find_status_condition(addons.get(CLUSTER, "submariner").conditions, TYPE)
    assert cond is not None
    assert (cond.status, cond.reason) == (status, reason)
    return cond


def test_all_established():
    controller, _, addons = make(new_submariner())
    controller.sync(KEY)
    cond = await_condition(addons, ConditionStatus.FALSE, "ConnectionsEstablished")
    assert cond.message == (
        'The connection between clusters "test" and "cluster1" is established\n'
        'The connection between clusters "test" and "cluster2" is established'
    )


def test_established_after_initially_not():
    sub = new_submariner()
    original = sub.gateways
    sub.gateways = None
    controller, lister, addons = make(sub)
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.TRUE, "ConnectionsNotEstablished")
    sub.gateways = original
    lister.add(sub)
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.FALSE, "ConnectionsEstablished")


@pytest.mark.parametrize("status", [ConnectionStatus.CONNECTING, ConnectionStatus.ERROR])
def test_degraded(status):
    sub = new_submariner()
    sub.gateways[0].connections[0].status = status
    controller, _, addons = make(sub)
    controller.sync(KEY)
    cond = await_condition(addons, ConditionStatus.TRUE, "ConnectionsDegraded")
    assert cond.message.endswith(
        f'The connection between clusters "test" and "cluster1" is not established (status={status.value})'
    )


def test_gateway_status_absent():
    sub = new_submariner()
    sub.gateways = None
    controller, _, addons = make(sub)
    controller.sync(KEY)
    cond = await_condition(addons, ConditionStatus.TRUE, "ConnectionsNotEstablished")
    assert cond.message == "There are no connections on gateways"


def test_no_gateways():
    sub = new_submariner()
    sub.gateways = []
    controller, _, addons = make(sub)
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.TRUE, "ConnectionsNotEstablished")


def test_no_active_connections():
    sub = new_submariner()
    sub.gateways[0].connections = []
    controller, _, addons = make(sub)
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.TRUE, "ConnectionsNotEstablished")


def test_update_initially_fails():
    controller, _, addons = make(new_submariner())
    addons.update_hooks.append(_fail_once(RuntimeError("fake error")))
    with pytest.raises(RuntimeError):
        controller.sync(KEY)
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.FALSE, "ConnectionsEstablished")


def test_update_conflict_is_retried():
    controller, _, addons = make(new_submariner())
    addons.update_hooks.append(_fail_once(ConflictError("conflict")))
    controller.sync(KEY)
    await_condition(addons, ConditionStatus.FALSE, "ConnectionsEstablished")


def test_missing_submariner_is_ignored():
    controller, _, addons = make(None)
    controller.sync(KEY)
    assert addons.get(CLUSTER, "submariner").conditions == []


def test_check_connections_directly():
    controller, _, _ = make(None)
    cond = controller.check_submariner_connections(new_submariner())
    assert cond.type == TYPE
    assert cond.status == ConditionStatus.FALSE
    assert cond.reason == "ConnectionsEstablished"