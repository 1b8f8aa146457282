"""The instance admin walkthrough: check, create, list, inspect, delete.

Each step issues one admin call and stops at the first failure, returning the
failing :class:`~cbtadmin.models.AdminResult` to the caller unchanged. Failed
locations on list calls are reported as warnings and never stop the run.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from .config import ClusterSettings, InstanceSettings
from .logging import OperationScope
from .models import AdminResult, ClusterConfig, InstanceConfig, InstanceDetails
from .providers.bigtable import BigtableInstanceAdmin


@dataclass(slots=True, frozen=True)
class WalkthroughRequest:
    """Positional arguments supplied on the command line."""

    project_id: str
    instance_id: str
    cluster_id: str
    zone: str


@dataclass(slots=True)
class Reporter:
    """Output streams used by the walkthrough.

    Resource names are printed with soft wrapping so a fully-qualified name
    always stays on one line, whatever the terminal width.
    """

    out: Console
    err: Console

    def heading(self, text: str) -> None:
        """Print a blank line followed by a bold section heading."""
        self.out.print()
        self.out.print(f"[bold]{text}[/bold]")

    def line(self, text: str) -> None:
        """Print *text* (Rich markup) without wrapping or cropping."""
        self.out.print(text, soft_wrap=True)

    def done(self) -> None:
        """Mark the end of a section."""
        self.out.print("DONE")

    def failed_locations(self, locations: Sequence[str]) -> None:
        """Warn about locations the service could not report on."""
        joined = " ".join(escape(location) for location in locations)
        self.err.print(
            "[yellow]The service tells us it has no information about these locations:"
            f"[/yellow] {joined}. Continuing anyway",
            soft_wrap=True,
        )

    def instance(self, details: InstanceDetails) -> None:
        """Print instance details as indented ``key: value`` lines."""
        for key, value in details.to_dict().items():
            if key == "labels":
                value = ", ".join(f"{k}={v}" for k, v in sorted(details.labels.items()))
            if value in (None, ""):
                continue
            self.line(f"  [bold]{key}:[/bold] {escape(str(value))}")


def _listing_detail(summary: str, failed_locations: Sequence[str]) -> str:
    if not failed_locations:
        return summary
    return f"{summary}; failed_locations={','.join(failed_locations)}"


def build_instance_config(
    request: WalkthroughRequest,
    instance: InstanceSettings,
    cluster: ClusterSettings,
) -> InstanceConfig:
    """Return the create request for *request* using the configured defaults."""
    return InstanceConfig(
        instance_id=request.instance_id,
        display_name=instance.display_name,
        clusters={
            request.cluster_id: ClusterConfig(
                zone=request.zone,
                serve_nodes=cluster.serve_nodes,
                storage_type=cluster.storage_type,
            )
        },
        instance_type=instance.type,
        labels=instance.labels,
    )


def check_instance_exists(
    admin: BigtableInstanceAdmin,
    request: WalkthroughRequest,
    reporter: Reporter,
    op: OperationScope,
) -> AdminResult[bool]:
    """List instances and report whether the target instance is among them."""
    reporter.heading("Check Instance exists:")
    listing = admin.list_instances()
    if not listing.ok or listing.value is None:
        op.add_step("instances.list", status="error", detail=listing.error)
        return AdminResult.failure(listing.error or "")
    failed = listing.value.failed_locations
    if failed:
        reporter.failed_locations(failed)
    exists = listing.value.contains(admin.instance_name(request.instance_id))
    op.add_step(
        "instances.list",
        status="warning" if failed else "success",
        detail=_listing_detail(f"exists={exists}", failed),
    )
    reporter.line(
        f"The instance {escape(request.instance_id)} "
        f"{'does' if exists else 'does not'} exist already"
    )
    return AdminResult.success(exists)


def create_instance(
    admin: BigtableInstanceAdmin,
    config: InstanceConfig,
    reporter: Reporter,
    op: OperationScope,
    *,
    timeout: float | None = None,
) -> AdminResult[InstanceDetails]:
    """Submit the create request and wait for it to finish."""
    reporter.heading(f"Creating a {config.instance_type} Instance:")
    pending = admin.create_instance(config)
    # Blocks until the instance exists; a long-lived service would await this instead.
    created = pending.result(timeout=timeout)
    if not created.ok or created.value is None:
        op.add_step("instance.create", status="error", detail=created.error)
        return AdminResult.failure(
            f"Could not create instance {config.instance_id}: {created.error}"
        )
    op.add_step("instance.create", status="success", detail=created.value.name)
    reporter.line(f"Successfully created instance: {escape(created.value.name)}")
    reporter.instance(created.value)
    reporter.done()
    return created


def list_instances(
    admin: BigtableInstanceAdmin,
    reporter: Reporter,
    op: OperationScope,
) -> AdminResult[None]:
    """Print the name of every instance in the project."""
    reporter.heading("Listing Instances:")
    listing = admin.list_instances()
    if not listing.ok or listing.value is None:
        op.add_step("instances.list", status="error", detail=listing.error)
        return AdminResult.failure(listing.error or "")
    failed = listing.value.failed_locations
    if failed:
        reporter.failed_locations(failed)
    for instance in listing.value.instances:
        reporter.line(f"  {escape(instance.name)}")
    op.add_step(
        "instances.list",
        status="warning" if failed else "success",
        detail=_listing_detail(f"count={len(listing.value.instances)}", failed),
    )
    reporter.done()
    return AdminResult.success()


def get_instance(
    admin: BigtableInstanceAdmin,
    request: WalkthroughRequest,
    reporter: Reporter,
    op: OperationScope,
) -> AdminResult[InstanceDetails]:
    """Fetch and print full details of the target instance."""
    reporter.heading("Get Instance:")
    fetched = admin.get_instance(request.instance_id)
    if not fetched.ok or fetched.value is None:
        op.add_step("instance.get", status="error", detail=fetched.error)
        return AdminResult.failure(fetched.error or "")
    op.add_step("instance.get", status="success", detail=fetched.value.state)
    reporter.line("Instance details:")
    reporter.instance(fetched.value)
    return fetched


def list_clusters(
    admin: BigtableInstanceAdmin,
    request: WalkthroughRequest,
    reporter: Reporter,
    op: OperationScope,
) -> AdminResult[None]:
    """Print the clusters of the target instance."""
    reporter.heading("Listing Clusters:")
    listing = admin.list_clusters(request.instance_id)
    if not listing.ok or listing.value is None:
        op.add_step("clusters.list", status="error", detail=listing.error)
        return AdminResult.failure(listing.error or "")
    failed = listing.value.failed_locations
    if failed:
        reporter.failed_locations(failed)
    reporter.line("Cluster Name List:")
    for cluster in listing.value.clusters:
        reporter.line(f"Cluster Name: {escape(cluster.name)}")
    op.add_step(
        "clusters.list",
        status="warning" if failed else "success",
        detail=_listing_detail(f"count={len(listing.value.clusters)}", failed),
    )
    reporter.done()
    return AdminResult.success()


def delete_instance(
    admin: BigtableInstanceAdmin,
    request: WalkthroughRequest,
    reporter: Reporter,
    op: OperationScope,
) -> AdminResult[None]:
    """Delete the target instance."""
    reporter.line(f"Deleting instance {escape(request.instance_id)}")
    deleted = admin.delete_instance(request.instance_id)
    if not deleted.ok:
        op.add_step("instance.delete", status="error", detail=deleted.error)
        return deleted
    op.add_step("instance.delete", status="success")
    reporter.done()
    return deleted


def run_walkthrough(
    admin: BigtableInstanceAdmin,
    request: WalkthroughRequest,
    config: InstanceConfig,
    reporter: Reporter,
    op: OperationScope,
    *,
    create_timeout: float | None = None,
) -> AdminResult[None]:
    """Run every step in order, returning the first failure encountered."""
    exists = check_instance_exists(admin, request, reporter, op)
    if not exists.ok:
        return AdminResult.failure(exists.error or "")

    if exists.value:
        op.add_step("instance.create", status="skipped", detail="already-exists")
    else:
        created = create_instance(admin, config, reporter, op, timeout=create_timeout)
        if not created.ok:
            return AdminResult.failure(created.error or "")

    listed = list_instances(admin, reporter, op)
    if not listed.ok:
        return listed

    fetched = get_instance(admin, request, reporter, op)
    if not fetched.ok:
        return AdminResult.failure(fetched.error or "")

    clusters = list_clusters(admin, request, reporter, op)
    if not clusters.ok:
        return clusters

    return delete_instance(admin, request, reporter, op)


__all__ = [
    "Reporter",
    "WalkthroughRequest",
    "build_instance_config",
    "run_walkthrough",
]
