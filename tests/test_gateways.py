import pytest

from spokeagent.gateways import GatewaysStatusController
from spokeagent.kube import (
    AddOn,
    AddOnStore,
    ConditionStatus,
    ConflictError,
    EventRecorder,
    Node,
    NodeStore,
    NotFoundError,
    find_status_condition,
)

CLUSTER = "test"
TYPE = "SubmarinerGatewayNodesLabeled"


def worker(name):
    return Node(name, {"node-role.kubernetes.io/worker": ""})


def gateway(name):
    node = worker(name)
    node.labels["submariner.io/gateway"] = "true"
    return node


def _fail_once(exc):
    calls = {"n": 0}

    def hook(obj):
        calls["n"] += 1
        if calls["n"] == 1:
            raise exc

    return hook


def make(nodes):
    node_store = NodeStore()
    for node in nodes:
        node_store.create(node)
    addons = AddOnStore()
    addons.create(AddOn("submariner", CLUSTER))
    recorder = EventRecorder("test")
    controller = GatewaysStatusController(CLUSTER, addons, node_store, recorder)
    return controller, node_store, addons, recorder


def condition(addons):
    return find_status_condition(addons.get(CLUSTER, "submariner").conditions, TYPE)


def assert_labeled(addons):
    cond = condition(addons)
    assert cond.status == ConditionStatus.TRUE
    assert cond.reason == "SubmarinerGatewayNodesLabeled"


def assert_unlabeled(addons):
    cond = condition(addons)
    assert cond.status == ConditionStatus.FALSE
    assert cond.reason == "SubmarinerGatewayNodesUnlabeled"


def default_nodes():
    return [worker("worker-1"), gateway("worker-2"), Node("non-worker")]


def test_labeled_gateway_sets_true():
    controller, _, addons, _ = make(default_nodes())
    controller.sync()
    assert_labeled(addons)
    assert condition(addons).message == 'The nodes "worker-2" are labeled with "submariner.io/gateway"'


def test_unlabeled_by_setting_false():
    controller, nodes, addons, _ = make(default_nodes())
    controller.sync()
    assert_labeled(addons)
    node = nodes.get("worker-2")
    node.labels["submariner.io/gateway"] = "false"
    nodes.update(node)
    controller.sync()
    assert_unlabeled(addons)
    assert condition(addons).message == 'There are no nodes with label "submariner.io/gateway"'


def test_unlabeled_by_removing():
    controller, nodes, addons, _ = make(default_nodes())
    controller.sync()
    assert_labeled(addons)
    node = nodes.get("worker-2")
    del node.labels["submariner.io/gateway"]
    nodes.update(node)
    controller.sync()
    assert_unlabeled(addons)


def test_subsequently_labeled():
    controller, nodes, addons, _ = make([worker("worker-1")])
    controller.sync()
    assert_unlabeled(addons)
    node = nodes.get("worker-1")
    node.labels["submariner.io/gateway"] = "true"
    nodes.update(node)
    controller.sync()
    assert_labeled(addons)


def test_gateway_names_sorted():
    controller, _, addons, _ = make([gateway("worker-b"), gateway("worker-a")])
    controller.sync()
    assert condition(addons).message == 'The nodes "worker-a,worker-b" are labeled with "submariner.io/gateway"'


def test_update_initially_fails():
    controller, _, addons, _ = make(default_nodes())
    addons.update_hooks.append(_fail_once(RuntimeError("fake error")))
    with pytest.raises(RuntimeError):
        controller.sync()
    controller.sync()
    assert_labeled(addons)


def test_update_conflict_is_retried():
    controller, _, addons, _ = make(default_nodes())
    addons.update_hooks.append(_fail_once(ConflictError("conflict")))
    controller.sync()
    assert_labeled(addons)


def test_event_only_on_change():
    controller, _, _, recorder = make(default_nodes())
    controller.sync()
    controller.sync()
    assert [reason for reason, _ in recorder.events] == ["ManagedClusterAddOnStatusUpdated"]


def test_accepts_only_workers():
    controller, _, _, _ = make([])
    assert controller.accepts(worker("w"))
    assert not controller.accepts(Node("non-worker"))


def test_missing_addon_raises():
    controller = GatewaysStatusController(CLUSTER, AddOnStore(), NodeStore(), EventRecorder())
    with pytest.raises(NotFoundError):
        controller.sync()