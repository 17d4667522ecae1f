"""Build version information."""

from __future__ import annotations

from dataclasses import dataclass

# Filled in by the build; empty when running from a source tree.
_commit_from_git = ""
_version_from_git = ""
_major_from_git = ""
_minor_from_git = ""
_build_date = ""

BUILD_INFO_METRIC = "open_cluster_management_submariner_addon_build_info"
BUILD_INFO_HELP = (
    "A metric with a constant '1' value labeled by major, minor, git commit & git version "
    "from which Open Cluster Management submariner-addon was built."
)


@dataclass(frozen=True)
class VersionInfo:
    major: str
    minor: str
    git_commit: str
    git_version: str
    build_date: str


def get() -> VersionInfo:
    """Return the version the running code was built from."""
    return VersionInfo(
        major=_major_from_git,
        minor=_minor_from_git,
        git_commit=_commit_from_git,
        git_version=_version_from_git,
        build_date=_build_date,
    )


def build_info_labels() -> dict[str, str]:
    """Return the labels of the build-info metric, whose value is always 1."""
    info = get()
    return {
        "major": info.major,
        "minor": info.minor,
        "gitCommit": info.git_commit,
        "gitVersion": info.git_version,
    }