"""Provider interfaces for cbtadmin."""
from __future__ import annotations

from .bigtable import BigtableInstanceAdmin, CreateInstanceFuture, build_client

__all__ = [
    "BigtableInstanceAdmin",
    "CreateInstanceFuture",
    "build_client",
]
