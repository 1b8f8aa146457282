"""Cloud Bigtable instance admin provider.

Thin wrapper over :class:`google.cloud.bigtable.Client` that turns each admin
call into an :class:`~cbtadmin.models.AdminResult` instead of letting
``google.api_core`` exceptions escape. Only API failures are converted; any
other exception is a bug and propagates.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent import futures
from pathlib import Path
from typing import Any, TypeVar

from google.api_core import exceptions as api_exceptions
from google.api_core.client_options import ClientOptions
from google.cloud import bigtable
from google.cloud.bigtable import enums
from google.oauth2 import service_account

from ..models import (
    AdminResult,
    ClusterDetails,
    ClusterList,
    InstanceConfig,
    InstanceDetails,
    InstanceList,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_API_ERRORS = (api_exceptions.GoogleAPICallError, api_exceptions.RetryError)

_INSTANCE_TYPES = {
    "PRODUCTION": enums.Instance.Type.PRODUCTION,
    "DEVELOPMENT": enums.Instance.Type.DEVELOPMENT,
}
_STORAGE_TYPES = {
    "SSD": enums.StorageType.SSD,
    "HDD": enums.StorageType.HDD,
}
_INSTANCE_TYPE_NAMES = {value: name for name, value in _INSTANCE_TYPES.items()}
_STORAGE_TYPE_NAMES = {value: name for name, value in _STORAGE_TYPES.items()}
_INSTANCE_STATE_NAMES = {
    enums.Instance.State.READY: "READY",
    enums.Instance.State.CREATING: "CREATING",
}
_CLUSTER_STATE_NAMES = {
    enums.Cluster.State.READY: "READY",
    enums.Cluster.State.CREATING: "CREATING",
    enums.Cluster.State.RESIZING: "RESIZING",
    enums.Cluster.State.DISABLED: "DISABLED",
}


def build_client(
    project_id: str,
    *,
    credentials_file: Path | None = None,
    admin_endpoint: str | None = None,
) -> bigtable.Client:
    """Return a Bigtable client with the admin API enabled."""
    credentials = None
    if credentials_file is not None:
        credentials = service_account.Credentials.from_service_account_file(
            str(credentials_file)
        )
    admin_options = ClientOptions(api_endpoint=admin_endpoint) if admin_endpoint else None
    return bigtable.Client(
        project=project_id,
        credentials=credentials,
        admin=True,
        admin_client_options=admin_options,
    )


def _error_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    return str(message or exc)


def _lookup(names: dict[Any, str], value: object, default: str) -> str:
    try:
        return names.get(value, default)
    except TypeError:
        return default


def _instance_id_from_name(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def instance_details(instance: Any) -> InstanceDetails:
    """Convert a client-library instance (object or protobuf) into details."""
    name = str(instance.name)
    return InstanceDetails(
        name=name,
        instance_id=_instance_id_from_name(name),
        display_name=str(instance.display_name or ""),
        type=_lookup(_INSTANCE_TYPE_NAMES, instance.type_, "UNSPECIFIED"),
        state=_lookup(_INSTANCE_STATE_NAMES, instance.state, "NOT_KNOWN"),
        labels={str(key): str(value) for key, value in dict(instance.labels or {}).items()},
    )


def cluster_details(cluster: Any) -> ClusterDetails:
    """Convert a client-library cluster into details."""
    name = str(cluster.name)
    return ClusterDetails(
        name=name,
        cluster_id=_instance_id_from_name(name),
        location=str(cluster.location_id or ""),
        serve_nodes=int(cluster.serve_nodes or 0),
        storage_type=_lookup(_STORAGE_TYPE_NAMES, cluster.default_storage_type, "UNSPECIFIED"),
        state=_lookup(_CLUSTER_STATE_NAMES, cluster.state, "NOT_KNOWN"),
    )


class CreateInstanceFuture:
    """Pending create-instance request.

    Wraps the long-running operation returned by the client library. Calling
    :meth:`result` blocks until the operation resolves and caches the outcome.
    """

    def __init__(
        self,
        instance_id: str,
        operation: Any | None = None,
        *,
        outcome: AdminResult[InstanceDetails] | None = None,
    ) -> None:
        if operation is None and outcome is None:
            raise ValueError("CreateInstanceFuture requires an operation or an outcome.")
        self.instance_id = instance_id
        self._operation = operation
        self._outcome = outcome

    def done(self) -> bool:
        """Return ``True`` when the outcome is known without blocking."""
        if self._outcome is not None:
            return True
        return bool(self._operation.done())

    def result(self, timeout: float | None = None) -> AdminResult[InstanceDetails]:
        """Block until the instance is created (or the request fails)."""
        if self._outcome is not None:
            return self._outcome
        try:
            created = self._operation.result(timeout=timeout)
        except _API_ERRORS as exc:
            outcome: AdminResult[InstanceDetails] = AdminResult.failure(_error_message(exc))
        except futures.TimeoutError:
            outcome = AdminResult.failure(
                f"Timed out after {timeout}s waiting for instance {self.instance_id}."
            )
        else:
            outcome = AdminResult.success(instance_details(created))
        self._outcome = outcome
        return outcome


class BigtableInstanceAdmin:
    """Instance admin operations for a single project."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def connect(
        cls,
        project_id: str,
        *,
        credentials_file: Path | None = None,
        admin_endpoint: str | None = None,
    ) -> BigtableInstanceAdmin:
        """Build an admin handle backed by a real Bigtable client."""
        client = build_client(
            project_id,
            credentials_file=credentials_file,
            admin_endpoint=admin_endpoint,
        )
        return cls(client)

    def project_name(self) -> str:
        """Return the fully-qualified project name (``projects/<id>``)."""
        return str(self._client.project_path)

    def instance_name(self, instance_id: str) -> str:
        """Return the fully-qualified name of *instance_id*."""
        return f"{self.project_name()}/instances/{instance_id}"

    def list_instances(self) -> AdminResult[InstanceList]:
        """List every instance in the project."""

        def _list() -> InstanceList:
            instances, failed_locations = self._client.list_instances()
            return InstanceList(
                instances=tuple(instance_details(item) for item in instances),
                failed_locations=_as_locations(failed_locations),
            )

        return self._call("list_instances", _list)

    def get_instance(self, instance_id: str) -> AdminResult[InstanceDetails]:
        """Fetch full details of *instance_id*."""

        def _get() -> InstanceDetails:
            instance = self._client.instance(instance_id)
            instance.reload()
            return instance_details(instance)

        return self._call("get_instance", _get)

    def list_clusters(self, instance_id: str) -> AdminResult[ClusterList]:
        """List the clusters of *instance_id*."""

        def _list() -> ClusterList:
            clusters, failed_locations = self._client.instance(instance_id).list_clusters()
            return ClusterList(
                clusters=tuple(cluster_details(item) for item in clusters),
                failed_locations=_as_locations(failed_locations),
            )

        return self._call("list_clusters", _list)

    def create_instance(self, config: InstanceConfig) -> CreateInstanceFuture:
        """Submit a create request and return a future for its completion."""
        instance = self._client.instance(
            config.instance_id,
            display_name=config.display_name,
            instance_type=_INSTANCE_TYPES[config.instance_type],
            labels=dict(config.labels) or None,
        )
        clusters = [
            instance.cluster(
                cluster_id,
                location_id=cluster.zone,
                serve_nodes=cluster.serve_nodes,
                default_storage_type=_STORAGE_TYPES[cluster.storage_type],
            )
            for cluster_id, cluster in config.clusters.items()
        ]
        LOGGER.debug(
            "create_instance %s with clusters %s",
            config.instance_id,
            ", ".join(config.clusters),
        )
        try:
            operation = instance.create(clusters=clusters)
        except _API_ERRORS as exc:
            LOGGER.debug("create_instance rejected: %s", exc)
            return CreateInstanceFuture(
                config.instance_id,
                outcome=AdminResult.failure(_error_message(exc)),
            )
        return CreateInstanceFuture(config.instance_id, operation)

    def delete_instance(self, instance_id: str) -> AdminResult[None]:
        """Delete *instance_id*."""

        def _delete() -> None:
            self._client.instance(instance_id).delete()

        return self._call("delete_instance", _delete)

    # ------------------------------------------------------------------
    def _call(self, name: str, func: Callable[[], T]) -> AdminResult[T]:
        LOGGER.debug("%s: sending request", name)
        try:
            value = func()
        except _API_ERRORS as exc:
            LOGGER.debug("%s failed: %s", name, exc)
            return AdminResult.failure(_error_message(exc))
        return AdminResult.success(value)


def _as_locations(raw: Iterable[object] | None) -> tuple[str, ...]:
    return tuple(str(location) for location in raw or ())


__all__ = [
    "BigtableInstanceAdmin",
    "CreateInstanceFuture",
    "build_client",
    "cluster_details",
    "instance_details",
]
