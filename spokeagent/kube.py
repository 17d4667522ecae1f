"""In-memory cluster primitives: conditions, label selectors, object stores and events."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Iterable, Iterator, Mapping, TypeVar

logger = logging.getLogger(__name__)

WORKER_NODE_LABEL = "node-role.kubernetes.io/worker"
SUBMARINER_ADDON_NAME = "submariner"

T = TypeVar("T")


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition:
    """A status condition as reported on a resource."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = field(default=None, compare=False)


def find_status_condition(conditions: Iterable[Condition], condition_type: str) -> Condition | None:
    """Return the condition of the given type, or None."""
    return next((c for c in conditions if c.type == condition_type), None)


def set_status_condition(conditions: list[Condition], condition: Condition) -> bool:
    """Add or update a condition in place; return True if anything changed."""
    now = datetime.now(timezone.utc)
    existing = find_status_condition(conditions, condition.type)
    if existing is None:
        new = copy.copy(condition)
        if new.last_transition_time is None:
            new.last_transition_time = now
        conditions.append(new)
        return True

    changed = False
    if existing.status != condition.status:
        existing.status = condition.status
        existing.last_transition_time = condition.last_transition_time or now
        changed = True
    if existing.reason != condition.reason:
        existing.reason = condition.reason
        changed = True
    if existing.message != condition.message:
        existing.message = condition.message
        changed = True
    return changed


def is_status_condition_true(conditions: Iterable[Condition], condition_type: str) -> bool:
    condition = find_status_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


class NotFoundError(LookupError):
    """The requested object does not exist."""


class ConflictError(Exception):
    """The object was modified concurrently or already exists."""


class Operator(Enum):
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    EQUALS = "="


@dataclass(frozen=True)
class Requirement:
    """A single label selector requirement."""

    key: str
    operator: Operator
    value: str | None = None

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("label key must not be empty")
        if self.operator is Operator.EQUALS and self.value is None:
            raise ValueError("an equality requirement needs a value")
        if self.operator is not Operator.EQUALS and self.value is not None:
            raise ValueError(f"operator {self.operator.name} takes no value")

    def matches(self, labels: Mapping[str, str]) -> bool:
        if self.operator is Operator.EXISTS:
            return self.key in labels
        if self.operator is Operator.DOES_NOT_EXIST:
            return self.key not in labels
        return labels.get(self.key) == self.value


@dataclass
class Node:
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    resource_version: int = 0


class _VersionedStore(Generic[T]):
    """Keyed store with optimistic concurrency and update hooks."""

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], T] = {}
        # Called with the object before every update; a hook may raise to make the update fail.
        self.update_hooks: list[Callable[[T], None]] = []

    def _fetch(self, key: tuple[str, str]) -> T:
        try:
            return copy.deepcopy(self._items[key])
        except KeyError:
            raise NotFoundError(f"{'/'.join(k for k in key if k)} not found") from None

    def _create(self, key: tuple[str, str], obj: T) -> T:
        if key in self._items:
            raise ConflictError(f"{'/'.join(k for k in key if k)} already exists")
        stored = copy.deepcopy(obj)
        stored.resource_version = 1  # type: ignore[attr-defined]
        self._items[key] = stored
        return copy.deepcopy(stored)

    def _update(self, key: tuple[str, str], obj: T) -> T:
        for hook in list(self.update_hooks):
            hook(obj)
        current = self._items.get(key)
        if current is None:
            raise NotFoundError(f"{'/'.join(k for k in key if k)} not found")
        if obj.resource_version != current.resource_version:  # type: ignore[attr-defined]
            raise ConflictError(f"{'/'.join(k for k in key if k)} has been modified")
        stored = copy.deepcopy(obj)
        stored.resource_version = current.resource_version + 1  # type: ignore[attr-defined]
        self._items[key] = stored
        return copy.deepcopy(stored)


class NodeStore(_VersionedStore[Node]):
    """Cluster-scoped node store."""

    def get(self, name: str) -> Node:
        return self._fetch(("", name))

    def list(self, *args: Requirement) -> list[Node]:
        return [
            copy.deepcopy(node)
            for node in self._items.values()
            if all(req.matches(node.labels) for req in args)
        ]

    def create(self, node: Node) -> Node:
        return self._create(("", node.name), node)

    def update(self, node: Node) -> Node:
        return self._update(("", node.name), node)


class ObjectStore(Generic[T]):
    """Namespaced lister over objects carrying ``namespace`` and ``name``."""

    def __init__(self, objects: Iterable[T] = ()) -> None:
        self._items: dict[tuple[str, str], T] = {}
        for obj in objects:
            self.add(obj)

    def get(self, namespace: str, name: str) -> T:
        try:
            return copy.deepcopy(self._items[(namespace, name)])
        except KeyError:
            raise NotFoundError(f"{namespace}/{name} not found") from None

    def add(self, obj: T) -> None:
        self._items[(obj.namespace, obj.name)] = copy.deepcopy(obj)  # type: ignore[attr-defined]

    def delete(self, namespace: str, name: str) -> None:
        try:
            del self._items[(namespace, name)]
        except KeyError:
            raise NotFoundError(f"{namespace}/{name} not found") from None

    def list(self) -> list[T]:
        return [copy.deepcopy(obj) for obj in self._items.values()]

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())


@dataclass
class AddOn:
    name: str
    namespace: str
    conditions: list[Condition] = field(default_factory=list)
    deletion_timestamp: datetime | None = None
    resource_version: int = 0


class AddOnStore(_VersionedStore[AddOn]):
    """Hub-side store of managed cluster add-ons."""

    def get(self, namespace: str, name: str) -> AddOn:
        return self._fetch((namespace, name))

    def create(self, addon: AddOn) -> AddOn:
        return self._create((addon.namespace, addon.name), addon)

    def update_condition(
        self, namespace: str, name: str, condition: Condition
    ) -> tuple[list[Condition], bool]:
        """Set a status condition, retrying on conflicts.

        Returns the resulting conditions and whether the add-on was updated.
        """

        def attempt() -> tuple[list[Condition], bool]:
            addon = self.get(namespace, name)
            if not set_status_condition(addon.conditions, condition):
                return addon.conditions, False
            stored = self._update((namespace, name), addon)
            return stored.conditions, True

        return retry_on_conflict(attempt)


class EventRecorder:
    """Collects emitted events and logs them."""

    def __init__(self, source: str = "spokeagent") -> None:
        self.source = source
        self.events: list[tuple[str, str]] = []

    def event(self, reason: str, message: str) -> None:
        self.events.append((reason, message))
        logger.info("%s: %s: %s", self.source, reason, message)


def retry_on_conflict(func: Callable[[], T], attempts: int = 4) -> T:
    """Call ``func``, retrying it when it raises ConflictError."""
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for remaining in range(attempts - 1, -1, -1):
        try:
            return func()
        except ConflictError:
            if remaining == 0:
                raise
    raise AssertionError("unreachable")


def go_quote(value: str) -> str:
    """Quote a string the way a double-quoted Go literal prints it."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    escaped = escaped.replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r")
    return f'"{escaped}"'