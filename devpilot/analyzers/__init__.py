"""Repository analyzers: tech-stack classification and codebase profiling."""

from .profile import CodebaseProfiler, TagRule
from .stack import StackRule, TechStackClassifier
from .utils import ManifestDetails, ManifestError, collect_manifest_details

__all__ = [
    "CodebaseProfiler",
    "ManifestDetails",
    "ManifestError",
    "StackRule",
    "TagRule",
    "TechStackClassifier",
    "collect_manifest_details",
]
