"""roofline: roof line topology from building footprints.

One-liner API::

    import roofline

    result = roofline.analyze_roof(candidates, reference=reference)
    print(result.summary())
    roofline.analyze_file("building.json", audit_db="audit.db")
    roofline.resolve_footprint(candidates).summary()
"""

__version__ = "1.0.0"

from roofline.api import (
    FootprintReport,
    RoofAnalysisResult,
    analyze_file,
    analyze_input,
    analyze_roof,
    resolve_footprint,
    skeleton_lines,
)
from roofline.triangulation.triangulator import fuse_vertices

__all__ = [
    "analyze_roof",
    "analyze_input",
    "analyze_file",
    "resolve_footprint",
    "skeleton_lines",
    "fuse_vertices",
    "RoofAnalysisResult",
    "FootprintReport",
    "__version__",
]
