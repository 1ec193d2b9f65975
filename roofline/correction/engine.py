"""Self-correction engine: Detect → Classify → Repair → Reverify.

The loop runs until no auto-fixable error remains or the iteration cap is
reached.  Every applied repair yields exactly one :class:`Correction`
which is appended to a :class:`TransformationLog`; replaying the log on
the initial topology reproduces the corrected one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterator, Optional, Sequence

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig
from roofline.core.models import Correction, CorrectionResult, RoofTopology, Severity, TopologyError
from roofline.correction.detector import ErrorDetector
from roofline.correction.registry import RepairRegistry, build_default_registry

logger = logging.getLogger("roofline.correction.engine")


class TransformationLog:
    """Append-only chain of Corrections starting at an initial topology."""

    def __init__(self, initial: RoofTopology, corrections: Sequence[Correction] = ()):
        self.initial = initial
        self._entries: list[Correction] = []
        for c in corrections:
            self.append(c)

    @property
    def current(self) -> RoofTopology:
        return self._entries[-1].after if self._entries else self.initial

    @property
    def entries(self) -> tuple[Correction, ...]:
        return tuple(self._entries)

    def append(self, correction: Correction) -> None:
        if correction.before.version != self.current.version:
            raise ValueError(
                f"Correction starts at v{correction.before.version}, log is at v{self.current.version}"
            )
        self._entries.append(correction)

    def replay(self, initial: Optional[RoofTopology] = None) -> RoofTopology:
        """Re-apply every recorded feature diff to *initial* (default: the logged start)."""
        topology = initial if initial is not None else self.initial
        for c in self._entries:
            removed, added = c.diff()
            added_ids = {f.id for f in added}
            topology = topology.replace_features(
                removed=[f.id for f in removed if f.id not in added_ids],
                added=added,
                ring=c.after.ring,
                footprint=c.after.footprint,
                confidence=c.after.confidence,
            )
        return topology

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Correction]:
        return iter(self._entries)


class SelfCorrectionEngine:
    """Bounded, idempotent repair loop over a roof topology.

    Usage::

        engine = SelfCorrectionEngine()
        result = engine.run(topology)
        if result.is_blocked:
            # hand over to human review
        for c in result.corrections:
            print(c.correction_type, c.reason, c.confidence_delta)
    """

    def __init__(
        self,
        config: RooflineConfig = DEFAULT_CONFIG,
        detector: Optional[ErrorDetector] = None,
        registry: Optional[RepairRegistry] = None,
    ):
        self.config = config
        self.cfg = config.correction
        self.detector = detector or ErrorDetector(config)
        self.registry = registry or build_default_registry(config)
        self.log: Optional[TransformationLog] = None

    def run(self, topology: RoofTopology) -> CorrectionResult:
        log = TransformationLog(topology)
        self.log = log
        iterations = 0
        errors = self.detector.detect(topology)

        while iterations < self.cfg.max_iterations:
            fixable = [e for e in errors if e.auto_fixable]
            if not fixable:
                break
            iterations += 1
            applied = 0
            for error in fixable:
                if self._repair(log, error):
                    applied += 1
            errors = self.detector.detect(log.current)
            logger.debug("Iteration %d: %d repair(s), %d error(s) left", iterations, applied, len(errors))
            if applied == 0:
                break

        converged = not any(e.auto_fixable for e in errors)
        remaining = errors if converged else [self._escalate(e) for e in errors]
        result = CorrectionResult(
            topology=log.current,
            corrections=list(log.entries),
            remaining_errors=remaining,
            iterations=iterations,
            converged=converged,
        )
        logger.info(
            "Self-correction: %d correction(s) in %d iteration(s), %d blocking error(s)",
            len(result.corrections),
            iterations,
            len(result.blocking_errors),
        )
        return result

    def _repair(self, log: TransformationLog, error: TopologyError) -> bool:
        op = self.registry.get(error.error_type)
        if op is None:
            logger.warning("No repair registered for %s", error.error_type)
            return False
        before = log.current
        outcome = op.apply(before, error)
        if not outcome.success or outcome.topology is None:
            return False

        confidence = min(self.cfg.confidence_cap, before.confidence + self.cfg.confidence_step)
        confidence = max(confidence, before.confidence)
        after = replace(outcome.topology, confidence=confidence)
        log.append(Correction(
            correction_type=error.error_type,
            before=before,
            after=after,
            reason=outcome.reason,
            confidence_delta=confidence - before.confidence,
            feature_ids=error.feature_ids,
        ))
        logger.debug("Applied %s to %s (v%d → v%d)", error.error_type, error.feature_ids,
                     before.version, after.version)
        return True

    @staticmethod
    def _escalate(error: TopologyError) -> TopologyError:
        """Severe errors still open after the cap become blocking."""
        if error.auto_fixable and error.severity == Severity.SEVERE:
            return replace(error, auto_fixable=False)
        return error
