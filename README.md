# spokeagent

Controllers for an agent that runs on a managed ("spoke") cluster and keeps a
hub cluster informed about the state of Submariner on that cluster. Each
controller reconciles one aspect of the cluster and records the result as a
status condition:

| Controller | Writes condition | Where |
|---|---|---|
| `SubmarinerConfigController` | `SubmarinerGatewaysLabeled`, `SubmarinerClusterEnvironmentPrepared` | the `SubmarinerConfig` status |
| `GatewaysStatusController` | `SubmarinerGatewayNodesLabeled` | the add-on status |
| `ConnectionsStatusController` | `SubmarinerConnectionDegraded` | the add-on status |
| `DeploymentStatusController` | `SubmarinerAgentDegraded` | the add-on status |

Every controller has a `sync()` method (`ConnectionsStatusController.sync`
takes a `"namespace/name"` key) that reads the current objects, computes the
condition and writes it with `update_condition`. An event is recorded on the
`EventRecorder` whenever a status actually changes.

## What the controllers do

**Gateway labeling** (`spokeagent.config_controller`). Reads the
`SubmarinerConfig` named `submariner` in the cluster's namespace and makes sure
the desired number of worker nodes (`node-role.kubernetes.io/worker`) carry
the `submariner.io/gateway=true` and `gateway.submariner.io/udp-port=<NAT-T
port>` labels. New gateways are picked across zones by
`find_gateways_with_zone`; when the desired count drops, surplus gateways are
unlabeled. Nothing happens until the config's `managed_cluster_info.platform`
is set. On `AWS` only the labeled count is reported; on `GCP` the cloud
environment is first prepared through the cloud provider factory. When the
add-on or the config carries a deletion timestamp, the cluster environment is
cleaned up (cloud provider on GCP, gateway labels removed on other platforms
except AWS). `failed_condition` and `success_condition` build the conditions
it reports.

**Gateway status** (`spokeagent.gateways`). Reports whether any node is
labeled `submariner.io/gateway=true`, listing the labeled node names in sorted
order.

**Connection status** (`spokeagent.connections`). Looks at the active gateways
of a `Submariner` object and reports whether all of their connections are
established, some are not (`ConnectionsDegraded`), or there are none
(`ConnectionsNotEstablished`). Passive gateways are ignored.

**Deployment status** (`spokeagent.deployment`). Checks the `submariner`
`Subscription`, the `submariner-operator` `Deployment` and the
`submariner-gateway` and `submariner-routeagent` `DaemonSet`s, and reports every
problem found in one condition, reasons joined by commas.

## Building blocks

`spokeagent.kube` holds the shared pieces:

- `Condition` and `ConditionStatus`, with `find_status_condition`,
  `set_status_condition` and `is_status_condition_true`.
- Label selection with `Requirement` and `Operator` (`EXISTS`,
  `DOES_NOT_EXIST`, `EQUALS`).
- In-memory stores: `NodeStore` and `AddOnStore` (with resource versions,
  optimistic concurrency and `update_hooks` that may raise to make an update
  fail) and the plain namespaced `ObjectStore`. `SubmarinerConfigStore` in
  `spokeagent.config_controller` works the same way.
- `NotFoundError`, `ConflictError` and `retry_on_conflict`.
- `EventRecorder`, which keeps the recorded `(reason, message)` pairs in
  `events` and logs them.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running the agent

```
spokeagent --hub-kubeconfig /path/to/hub.kubeconfig --cluster-name cluster1
```

Both options are required; the command exits with an error without them. The
installation namespace is read from the service-account namespace file and
defaults to `submariner-operator`. The agent then runs all controllers once a
second until interrupted, logging any sync that fails.

## Using it as a library

```python
import threading

from spokeagent.agent import AgentOptions
from spokeagent.kube import EventRecorder

options = AgentOptions(cluster_name="cluster1", hub_kubeconfig_file="/path/to/hub.kubeconfig")
options.complete()
options.validate()

controllers = options.build_controllers(hub, spoke, cloud_provider_factory, EventRecorder())
```

`hub` is any object with `addons` (an `AddOnStore`) and `configs` (a
`SubmarinerConfigStore`); `spoke` has `nodes`, `daemonsets`, `deployments`,
`subscriptions` and `submariners`. The cloud provider factory has a
`get(managed_cluster_info, config, recorder)` method returning an object with
`prepare_submariner_cluster_env()` and `cleanup_submariner_cluster_env()`.
`AgentOptions.run_agent(hub, spoke, cloud_provider_factory, recorder,
stop_event)` syncs every controller each `sync_interval` seconds until
`stop_event` is set.

Build information is available from `spokeagent.version.get()`, which returns
a `VersionInfo`, and `spokeagent.version.build_info_labels()`; outside a
release build the fields are empty strings.

## What it does not do

The package does not talk to a real cluster API server. The hub kubeconfig
path is checked for being given but the file is never read, and the
`spokeagent` command runs the controllers over empty in-memory stores with no
cloud provider, so on its own it reports nothing. There is no watching of
resources, no lease renewal and no metrics endpoint; callers feed the stores
and call `sync()` themselves, or use `run_agent` for periodic syncing.