import dataclasses

import pytest

from spokeagent import version


def test_get_reflects_build_values(monkeypatch):
    monkeypatch.setattr(version, "_major_from_git", "4")
    monkeypatch.setattr(version, "_minor_from_git", "7")
    monkeypatch.setattr(version, "_commit_from_git", "abc123")
    monkeypatch.setattr(version, "_version_from_git", "v4.7.0")
    monkeypatch.setattr(version, "_build_date", "2021-01-01T00:00:00Z")
    info = version.get()
    assert info == version.VersionInfo(
        major="4",
        minor="7",
        git_commit="abc123",
        git_version="v4.7.0",
        build_date="2021-01-01T00:00:00Z",
    )


def test_get_follows_changed_build_values(monkeypatch):
    monkeypatch.setattr(version, "_version_from_git", "v0.1.0")
    assert version.get().git_version == "v0.1.0"
    monkeypatch.setattr(version, "_version_from_git", "v0.2.0")
    assert version.get().git_version == "v0.2.0"


def test_version_info_is_frozen(monkeypatch):
    monkeypatch.setattr(version, "_major_from_git", "4")
    info = version.get()
    with pytest.raises(dataclasses.FrozenInstanceError):
        info.major = "9"
    assert info.major == "4"


def test_build_info_label_names():
    assert set(version.build_info_labels()) == {"major", "minor", "gitCommit", "gitVersion"}


def test_build_info_labels_match_version(monkeypatch):
    monkeypatch.setattr(version, "_commit_from_git", "deadbeef")
    monkeypatch.setattr(version, "_version_from_git", "v1.2.3")
    info = version.get()
    labels = version.build_info_labels()
    assert labels["major"] == info.major
    assert labels["minor"] == info.minor
    assert labels["gitCommit"] == "deadbeef"
    assert labels["gitVersion"] == "v1.2.3"