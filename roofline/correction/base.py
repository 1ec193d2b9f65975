"""Abstract base class for topology repair operations.

Every repair (ridge extension, hip snap, edge split, cluster merge, …)
inherits from ``RepairOperation`` and implements ``name`` and
``execute``, optionally overriding ``validate``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.models import LinearFeature, RoofTopology, TopologyError
from roofline.geometry import primitives as geo
from roofline.topology.builder import link_features

logger = logging.getLogger("roofline.correction")

ZERO_LENGTH_FT = 1e-6


@dataclass
class RepairOutcome:
    """Result of applying one repair to one error."""

    error: TopologyError
    success: bool
    topology: Optional[RoofTopology] = None
    reason: str = ""


class RepairOperation(ABC):
    """Base class for topology repairs.

    Subclasses must implement:
    - ``name``    — the error type this repair handles
    - ``execute`` — return the next topology version, or ``None`` when the
      error no longer applies or cannot be repaired

    The ``apply`` method handles the full lifecycle:
    execute → validate → return RepairOutcome.
    """

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG):
        self.config = config
        self.cfg = config.correction

    @property
    @abstractmethod
    def name(self) -> str:
        """Error type handled by this repair (e.g. ``"hip_not_at_corner"``)."""
        ...

    @abstractmethod
    def execute(self, topology: RoofTopology, error: TopologyError) -> Optional[RoofTopology]:
        """Repair *error* against the current *topology*.

        Implementations re-check the error first; a stale error returns
        ``None`` so nothing is recorded.
        """
        ...

    def describe(self, error: TopologyError) -> str:
        return error.detail or f"{self.name} at ({error.location.x:.1f}, {error.location.y:.1f})"

    def validate(self, original: RoofTopology, repaired: Optional[RoofTopology]) -> bool:
        """The repair must change something and leave no degenerate or crossing line."""
        if repaired is None:
            return False
        if repaired.features == original.features and repaired.ring == original.ring:
            return False
        if any(f.length <= ZERO_LENGTH_FT for f in repaired.features):
            return False
        if geo.find_self_intersections(repaired.ring):
            return False
        return True

    def apply(self, topology: RoofTopology, error: TopologyError) -> RepairOutcome:
        """Full repair lifecycle: execute → validate → return outcome."""
        try:
            repaired = self.execute(topology, error)
            passed = self.validate(topology, repaired)
            return RepairOutcome(
                error=error,
                success=passed,
                topology=repaired if passed else None,
                reason=self.describe(error),
            )
        except Exception as exc:
            logger.warning("Repair %s failed on %s: %s", self.name, error.feature_ids, exc)
            return RepairOutcome(error=error, success=False, reason=str(exc))

    # ── helpers for subclasses ──────────────────────────────────────

    def commit(
        self,
        topology: RoofTopology,
        removed: Sequence[str] = (),
        added: Sequence[LinearFeature] = (),
        **changes,
    ) -> RoofTopology:
        """Next version with the feature changes applied and connections refreshed."""
        dropped = [f.id for f in added if f.length <= ZERO_LENGTH_FT]
        kept = [f for f in added if f.length > ZERO_LENGTH_FT]
        nxt = topology.replace_features(removed=list(removed) + dropped, added=kept, **changes)
        linked = link_features(nxt.features, self.config.topology.hip_connection_ft)
        return replace(nxt, features=tuple(linked))
