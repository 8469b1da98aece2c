"""Artifact writing and console reporting."""

from .artifacts import ArtifactPaths, ArtifactWriter, build_har
from .console import ReportRenderer

__all__ = ["ArtifactPaths", "ArtifactWriter", "build_har", "ReportRenderer"]
