"""High-level audit logger: converts Corrections and analysis results to DB rows."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from roofline.audit.database import AuditDatabase
from roofline.core.models import Correction
from roofline.geometry.wkt import features_to_wkt

logger = logging.getLogger("roofline.audit.logger")


class AuditLogger:
    """Records every applied correction in the audit database.

    Usage::

        audit = AuditLogger(Path("roofline_audit.db"))
        audit.log_corrections(result.corrections, building_id="parcel-42")
        history = audit.get_history(building_id="parcel-42")
    """

    def __init__(self, db_path: Path, session_id: str | None = None):
        self.db = AuditDatabase(db_path)
        self.session_id = session_id or str(uuid.uuid4())[:8]

    def log_correction(self, correction: Correction, building_id: str) -> int:
        """Write one correction to the audit log. Returns the row ID."""
        removed, added = correction.diff()
        projection = correction.before.projection()
        entry = {
            "timestamp": correction.timestamp.isoformat(),
            "session_id": self.session_id,
            "building_id": building_id,
            "correction_type": correction.correction_type,
            "reason": correction.reason,
            "feature_ids": ",".join(correction.feature_ids),
            "before_wkt": features_to_wkt(removed, projection) if removed else None,
            "after_wkt": features_to_wkt(added, projection) if added else None,
            "confidence_delta": correction.confidence_delta,
            "from_version": correction.before.version,
            "to_version": correction.after.version,
        }
        row_id = self.db.insert_correction(entry)
        logger.debug(
            "Audit logged: building=%s correction=%s v%d→v%d",
            building_id,
            correction.correction_type,
            correction.before.version,
            correction.after.version,
        )
        return row_id

    def log_corrections(self, corrections: Iterable[Correction], building_id: str) -> list[int]:
        ids = [self.log_correction(c, building_id) for c in corrections]
        if ids:
            logger.info("Audit logged %d correction(s) for %s", len(ids), building_id)
        return ids

    def log_result(self, result: dict, building_id: str) -> int:
        """Write one analysis-run row from a :class:`RoofAnalysisResult`."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": self.session_id,
            "building_id": building_id,
            "source": result.get("source", ""),
            "status": result.get("status", ""),
            "confidence": result.get("confidence", 0.0),
            "footprint_wkt": result.get("footprint_wkt"),
            "features_wkt": result.get("features_wkt"),
            "corrections": len(result.get("corrections", [])),
            "warnings": len(result.get("warnings", [])),
        }
        return self.db.insert_run(entry)

    def get_history(
        self,
        building_id: str | None = None,
        correction_type: str | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """Query correction history with optional filters."""
        return self.db.query(
            building_id=building_id,
            session_id=None,
            correction_type=correction_type,
            limit=limit,
        )

    def get_session_summary(self) -> dict:
        """Summary of the current session's corrections."""
        rows = self.db.query(session_id=self.session_id, limit=10000)
        by_type: dict[str, int] = {}
        for r in rows:
            by_type[r["correction_type"]] = by_type.get(r["correction_type"], 0) + 1
        return {
            "session_id": self.session_id,
            "total_corrections": len(rows),
            "by_type": by_type,
            "confidence_gain": sum(r["confidence_delta"] for r in rows),
        }

    def close(self) -> None:
        self.db.close()
