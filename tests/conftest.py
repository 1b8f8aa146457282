"""Pytest configuration and a stand-in for the Bigtable admin service."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest
from google.api_core.exceptions import NotFound
from google.cloud.bigtable import enums

from cbtadmin.providers.bigtable import BigtableInstanceAdmin


@dataclass
class StoredCluster:
    """Cluster kept by the fake service."""

    cluster_id: str
    location_id: str
    serve_nodes: int
    default_storage_type: object


@dataclass
class StoredInstance:
    """Instance kept by the fake service."""

    display_name: str
    type_: object
    labels: dict[str, str] = field(default_factory=dict)
    clusters: list[StoredCluster] = field(default_factory=list)


class FakeOperation:
    """Long-running create operation that resolves when ``result`` is called."""

    def __init__(self, client: FakeBigtableClient, instance: FakeInstance, clusters: list) -> None:
        """Remember the instance and clusters to store on completion."""
        self._client = client
        self._instance = instance
        self._clusters = clusters
        self._resolved = False

    def done(self) -> bool:
        """Return ``True`` once the operation has been waited on."""
        return self._resolved

    def result(self, timeout: float | None = None) -> SimpleNamespace:
        """Store the instance and return a protobuf-like snapshot."""
        self._client.calls.append(("operation.result", self._instance.instance_id, timeout))
        self._client.maybe_fail("operation")
        self._resolved = True
        stored = StoredInstance(
            display_name=self._instance.display_name,
            type_=self._instance.type_,
            labels=dict(self._instance.labels or {}),
            clusters=[
                StoredCluster(
                    cluster_id=cluster.cluster_id,
                    location_id=cluster.location_id,
                    serve_nodes=cluster.serve_nodes,
                    default_storage_type=cluster.default_storage_type,
                )
                for cluster in self._clusters
            ],
        )
        self._client.stored[self._instance.instance_id] = stored
        return self._client.instance_snapshot(self._instance.instance_id)


class FakeInstance:
    """Mimics :class:`google.cloud.bigtable.instance.Instance`."""

    def __init__(
        self,
        client: FakeBigtableClient,
        instance_id: str,
        display_name: str | None = None,
        instance_type: object | None = None,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Bind the instance handle to *client*."""
        self._client = client
        self.instance_id = instance_id
        self.display_name = display_name or instance_id
        self.type_ = instance_type
        self.labels = labels
        self.state = None

    @property
    def name(self) -> str:
        """Return the fully-qualified instance name."""
        return self._client.instance_name(self.instance_id)

    def cluster(
        self,
        cluster_id: str,
        location_id: str | None = None,
        serve_nodes: int | None = None,
        default_storage_type: object | None = None,
    ) -> SimpleNamespace:
        """Return a cluster handle for creation."""
        return SimpleNamespace(
            cluster_id=cluster_id,
            location_id=location_id,
            serve_nodes=serve_nodes,
            default_storage_type=default_storage_type,
        )

    def create(self, clusters: list) -> FakeOperation:
        """Start creating the instance."""
        self._client.calls.append(("create", self.instance_id, clusters))
        self._client.maybe_fail("create")
        self._client.created.append((self, clusters))
        return FakeOperation(self._client, self, clusters)

    def reload(self) -> None:
        """Refresh attributes from the fake service."""
        self._client.calls.append(("reload", self.instance_id))
        self._client.maybe_fail("reload")
        stored = self._client.require(self.instance_id)
        self.display_name = stored.display_name
        self.type_ = stored.type_
        self.labels = dict(stored.labels)
        self.state = enums.Instance.State.READY

    def list_clusters(self) -> tuple[list[SimpleNamespace], list[str]]:
        """Return the clusters of the instance and the failed locations."""
        self._client.calls.append(("list_clusters", self.instance_id))
        self._client.maybe_fail("list_clusters")
        stored = self._client.require(self.instance_id)
        clusters = [
            SimpleNamespace(
                name=f"{self.name}/clusters/{cluster.cluster_id}",
                location_id=cluster.location_id,
                serve_nodes=cluster.serve_nodes,
                default_storage_type=cluster.default_storage_type,
                state=enums.Cluster.State.READY,
            )
            for cluster in stored.clusters
        ]
        return clusters, list(self._client.cluster_failed_locations)

    def delete(self) -> None:
        """Remove the instance from the fake service."""
        self._client.calls.append(("delete", self.instance_id))
        self._client.maybe_fail("delete")
        self._client.require(self.instance_id)
        del self._client.stored[self.instance_id]


class FakeBigtableClient:
    """In-memory stand-in for :class:`google.cloud.bigtable.Client`."""

    def __init__(self, project: str = "proj") -> None:
        """Start with no instances and no scheduled failures."""
        self.project = project
        self.stored: dict[str, StoredInstance] = {}
        self.failed_locations: list[str] = []
        self.cluster_failed_locations: list[str] = []
        self.calls: list[tuple[object, ...]] = []
        self.created: list[tuple[FakeInstance, list]] = []
        self._failures: dict[str, tuple[BaseException, int]] = {}
        self._counts: Counter[str] = Counter()

    @property
    def project_path(self) -> str:
        """Return ``projects/<project>``."""
        return f"projects/{self.project}"

    def instance_name(self, instance_id: str) -> str:
        """Return the fully-qualified name of *instance_id*."""
        return f"{self.project_path}/instances/{instance_id}"

    def fail(self, method: str, error: BaseException, *, on_call: int = 1) -> None:
        """Raise *error* the *on_call*-th time *method* is invoked."""
        self._failures[method] = (error, on_call)

    def maybe_fail(self, method: str) -> None:
        """Raise the scheduled failure for *method*, if it is due."""
        self._counts[method] += 1
        scheduled = self._failures.get(method)
        if scheduled is not None and scheduled[1] == self._counts[method]:
            raise scheduled[0]

    def add_instance(
        self,
        instance_id: str,
        *,
        clusters: Iterable[tuple[str, str]] = (("cl1", "us-central1-f"),),
    ) -> None:
        """Seed an existing instance with ``(cluster_id, zone)`` clusters."""
        self.stored[instance_id] = StoredInstance(
            display_name=f"{instance_id} display",
            type_=enums.Instance.Type.PRODUCTION,
            clusters=[
                StoredCluster(cluster_id, zone, 3, enums.StorageType.HDD)
                for cluster_id, zone in clusters
            ],
        )

    def require(self, instance_id: str) -> StoredInstance:
        """Return the stored instance or raise ``NotFound``."""
        stored = self.stored.get(instance_id)
        if stored is None:
            raise NotFound(f"Instance {self.instance_name(instance_id)} not found.")
        return stored

    def instance_snapshot(self, instance_id: str) -> SimpleNamespace:
        """Return a protobuf-like view of a stored instance."""
        stored = self.require(instance_id)
        return SimpleNamespace(
            name=self.instance_name(instance_id),
            display_name=stored.display_name,
            type_=stored.type_,
            state=enums.Instance.State.READY,
            labels=dict(stored.labels),
        )

    def list_instances(self) -> tuple[list[SimpleNamespace], list[str]]:
        """Return every stored instance plus the failed locations."""
        self.calls.append(("list_instances",))
        self.maybe_fail("list_instances")
        snapshots = [self.instance_snapshot(instance_id) for instance_id in sorted(self.stored)]
        return snapshots, list(self.failed_locations)

    def instance(
        self,
        instance_id: str,
        display_name: str | None = None,
        instance_type: object | None = None,
        labels: dict[str, str] | None = None,
    ) -> FakeInstance:
        """Return an instance handle."""
        return FakeInstance(self, instance_id, display_name, instance_type, labels)

    def method_calls(self) -> list[object]:
        """Return just the names of the calls made so far."""
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_client() -> FakeBigtableClient:
    """Return an empty fake Bigtable service for project ``proj``."""
    return FakeBigtableClient("proj")


@pytest.fixture
def admin(fake_client: FakeBigtableClient) -> BigtableInstanceAdmin:
    """Return an admin handle bound to the fake service."""
    return BigtableInstanceAdmin(fake_client)


@pytest.fixture
def make_client() -> type[FakeBigtableClient]:
    """Return the fake service class for tests that need a custom project."""
    return FakeBigtableClient
