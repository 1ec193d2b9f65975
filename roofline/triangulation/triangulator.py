"""Multi-source vertex triangulation.

Vertex estimates of the same type reported by different sources are
matched when they lie within a tolerance of each other.  Overlapping
matches form one group, fused to a confidence-weighted centroid.
"""

from __future__ import annotations

import logging
from typing import Sequence

from roofline.core.config import DEFAULT_CONFIG, RooflineConfig, TriangulationConfig
from roofline.core.models import (
    FusedVertex,
    Point,
    QualityGrade,
    SourceVertex,
    TriangulationResult,
)
from roofline.footprint.scoring import clamp01
from roofline.geometry.primitives import distance

logger = logging.getLogger("roofline.triangulation")


class VertexTriangulator:
    """Fuse per-source vertex estimates into consensus vertices.

    Usage::

        result = VertexTriangulator().fuse(vertices)
        print(result.grade.value, result.multi_source_fraction)
    """

    def __init__(self, config: RooflineConfig = DEFAULT_CONFIG):
        self.cfg: TriangulationConfig = config.triangulation

    def fuse(self, vertices: Sequence[SourceVertex]) -> TriangulationResult:
        groups = self._group(list(vertices))
        fused = sorted(
            (self._fuse_group(g) for g in groups),
            key=lambda v: (v.vertex_type.value, round(v.position.x, 6), round(v.position.y, 6)),
        )
        multi = sum(1 for v in fused if v.source_count >= 2)
        fraction = multi / len(fused) if fused else 0.0
        residuals = [v.residual_ft for v in fused]
        mean_residual = sum(residuals) / len(residuals) if residuals else 0.0
        grade = self.grade(fraction, mean_residual)
        logger.info(
            "Fused %d estimate(s) into %d vertices: %.0f%% multi-source, residual %.2f ft, %s",
            len(vertices),
            len(fused),
            fraction * 100,
            mean_residual,
            grade.value,
        )
        return TriangulationResult(
            vertices=fused,
            grade=grade,
            multi_source_fraction=fraction,
            mean_residual_ft=mean_residual,
        )

    def _group(self, vertices: list[SourceVertex]) -> list[list[SourceVertex]]:
        parent = list(range(len(vertices)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        for i, a in enumerate(vertices):
            for j in range(i + 1, len(vertices)):
                b = vertices[j]
                if (
                    a.vertex_type == b.vertex_type
                    and a.source != b.source
                    and distance(a.position, b.position) <= self.cfg.tolerance_ft
                ):
                    ri, rj = find(i), find(j)
                    if ri != rj:
                        parent[max(ri, rj)] = min(ri, rj)

        groups: dict[int, list[SourceVertex]] = {}
        for i, v in enumerate(vertices):
            groups.setdefault(find(i), []).append(v)
        return [groups[k] for k in sorted(groups)]

    def _fuse_group(self, members: list[SourceVertex]) -> FusedVertex:
        weights = [max(m.confidence, 0.0) for m in members]
        total = sum(weights)
        if total <= 0:
            weights = [1.0] * len(members)
            total = float(len(members))
        x = sum(w * m.position.x for w, m in zip(weights, members)) / total
        y = sum(w * m.position.y for w, m in zip(weights, members)) / total
        position = Point(x, y)

        sources = tuple(sorted({m.source for m in members}))
        weighted = sum(w * m.confidence for w, m in zip(weights, members)) / total
        bonus = min(self.cfg.max_bonus, self.cfg.bonus_per_source * (len(sources) - 1))
        residual = sum(distance(position, m.position) for m in members) / len(members)
        return FusedVertex(
            vertex_type=members[0].vertex_type,
            position=position,
            confidence=clamp01(weighted + bonus),
            sources=sources,
            members=tuple(members),
            residual_ft=residual,
        )

    def grade(self, multi_source_fraction: float, mean_residual_ft: float) -> QualityGrade:
        cfg = self.cfg
        if multi_source_fraction >= cfg.excellent_fraction and mean_residual_ft <= cfg.excellent_residual_ft:
            return QualityGrade.EXCELLENT
        if multi_source_fraction >= cfg.good_fraction and mean_residual_ft <= cfg.good_residual_ft:
            return QualityGrade.GOOD
        if multi_source_fraction >= cfg.fair_fraction:
            return QualityGrade.FAIR
        return QualityGrade.POOR


def fuse_vertices(vertices: Sequence[SourceVertex], config: RooflineConfig = DEFAULT_CONFIG) -> TriangulationResult:
    return VertexTriangulator(config).fuse(vertices)
