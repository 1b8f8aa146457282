"""Request and response values exchanged with the instance admin API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class AdminResult(Generic[T]):
    """Outcome of a single admin call: a value on success, a message on failure."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return ``True`` when the call succeeded."""
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> AdminResult[T]:
        """Wrap a successful *value*."""
        return cls(value=value)

    @classmethod
    def failure(cls, message: str) -> AdminResult[T]:
        """Wrap a failure carrying the service *message*."""
        return cls(error=message or "unknown error")


@dataclass(slots=True, frozen=True)
class InstanceDetails:
    """Snapshot of an instance as reported by the service."""

    name: str
    instance_id: str
    display_name: str
    type: str
    state: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "name": self.name,
            "instance_id": self.instance_id,
            "display_name": self.display_name,
            "type": self.type,
            "state": self.state,
            "labels": dict(self.labels),
        }


@dataclass(slots=True, frozen=True)
class ClusterDetails:
    """Snapshot of a cluster belonging to an instance."""

    name: str
    cluster_id: str
    location: str
    serve_nodes: int
    storage_type: str
    state: str


@dataclass(slots=True, frozen=True)
class InstanceList:
    """Instances of a project plus the locations the service could not query."""

    instances: tuple[InstanceDetails, ...] = ()
    failed_locations: tuple[str, ...] = ()

    def contains(self, instance_name: str) -> bool:
        """Return ``True`` when *instance_name* (fully qualified) is listed."""
        return any(instance.name == instance_name for instance in self.instances)


@dataclass(slots=True, frozen=True)
class ClusterList:
    """Clusters of an instance plus the locations the service could not query."""

    clusters: tuple[ClusterDetails, ...] = ()
    failed_locations: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ClusterConfig:
    """Placement and sizing of a cluster to create."""

    zone: str
    serve_nodes: int
    storage_type: str


@dataclass(slots=True, frozen=True)
class InstanceConfig:
    """Everything needed to submit a create-instance request."""

    instance_id: str
    display_name: str
    clusters: Mapping[str, ClusterConfig]
    instance_type: str = "PRODUCTION"
    labels: Mapping[str, str] = field(default_factory=dict)


__all__ = [
    "AdminResult",
    "ClusterConfig",
    "ClusterDetails",
    "ClusterList",
    "InstanceConfig",
    "InstanceDetails",
    "InstanceList",
]
