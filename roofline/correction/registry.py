"""Repair operation registry: maps error types to RepairOperation instances."""

from __future__ import annotations

import logging
from typing import Optional

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.correction.base import RepairOperation

logger = logging.getLogger("roofline.correction.registry")


class RepairRegistry:
    """Registry that maps error type names to RepairOperation instances.

    Usage::

        registry = RepairRegistry()
        registry.register(SnapHipRepair())

        op = registry.get("hip_not_at_corner")
        outcome = op.apply(topology, error)
    """

    def __init__(self) -> None:
        self._ops: dict[str, RepairOperation] = {}

    def register(self, op: RepairOperation) -> None:
        """Register a repair under the error type it handles."""
        if op.name in self._ops:
            logger.warning("Overwriting repair operation: %s", op.name)
        self._ops[op.name] = op
        logger.debug("Registered repair operation: %s", op.name)

    def get(self, name: str) -> Optional[RepairOperation]:
        return self._ops.get(name)

    def list_operations(self) -> list[str]:
        return list(self._ops.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._ops


def build_default_registry(config: RooflineConfig = DEFAULT_CONFIG) -> RepairRegistry:
    """Create a registry pre-loaded with all built-in repairs."""
    from roofline.correction.repairs import (
        CloseFacetRepair,
        ExtendRidgeRepair,
        MergeClusterRepair,
        RemoveDuplicateRepair,
        RemoveOrphanRepair,
        SnapHipRepair,
        SnapValleyRepair,
        SplitLongEdgeRepair,
    )

    registry = RepairRegistry()
    for op in (
        RemoveDuplicateRepair(config),
        MergeClusterRepair(config),
        CloseFacetRepair(config),
        ExtendRidgeRepair(config, "start"),
        ExtendRidgeRepair(config, "end"),
        SnapHipRepair(config),
        SnapValleyRepair(config),
        SplitLongEdgeRepair(config),
        RemoveOrphanRepair(config),
    ):
        registry.register(op)
    return registry
