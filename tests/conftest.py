"""Test configuration and fixtures for devcompose tests."""

import json
import tempfile
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from devcompose.manifest import FeatureManifest
from devcompose.reference import FeatureReference


class RecordingLookup:
    """Manifest lookup over an in-memory graph that records every call."""

    def __init__(self, graph: dict[str, dict[str, dict]], missing: set[str] | None = None) -> None:
        self.manifests = {
            FeatureReference.parse(ref): FeatureManifest(
                id=FeatureReference.parse(ref).name,
                depends_on=depends_on,
            )
            for ref, depends_on in graph.items()
        }
        self.missing = {FeatureReference.parse(ref) for ref in missing or set()}
        self.calls: list[FeatureReference] = []
        self._lock = threading.Lock()

    def __call__(self, ref: FeatureReference) -> FeatureManifest | None:
        with self._lock:
            self.calls.append(ref)
        if ref in self.missing:
            return None
        return self.manifests.get(ref)

    def call_count(self, ref: str) -> int:
        """Return how many times a reference was looked up."""
        target = FeatureReference.parse(ref)
        return sum(1 for call in self.calls if call == target)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_manifests() -> dict[str, dict]:
    """Sample devcontainer-feature.json documents for an 'acme' features repository."""
    return {
        "aws-cli": {
            "id": "aws-cli",
            "version": "1.2.0",
            "description": "Installs the AWS CLI",
            "options": {
                "version": {"type": "string", "default": "latest", "proposals": ["latest", "2.15"]},
                "installSam": {"type": "boolean", "default": False},
                "profile": {"type": "string", "description": "No default here"},
            },
            "dependsOn": {"./features/docker": {}},
        },
        "docker": {
            "id": "docker",
            "description": "Installs Docker",
        },
        "terraform": {
            "id": "terraform",
            "version": "2.0.0",
            "description": "Installs Terraform",
            "dependsOn": {
                "./aws-cli": {},
                "ghcr.io/devcontainers/features/common-utils:2": {"installZsh": True},
            },
        },
    }


@pytest.fixture
def feature_source_dir(temp_dir: Path, sample_manifests: dict[str, dict]) -> Path:
    """Create a features repository 'src' directory with sample manifests."""
    src_dir = temp_dir / "features" / "src"
    for name, manifest in sample_manifests.items():
        feature_dir = src_dir / name
        feature_dir.mkdir(parents=True)
        (feature_dir / "devcontainer-feature.json").write_text(json.dumps(manifest, indent=2))
        (feature_dir / "install.sh").write_text("#!/bin/bash\necho install\n")

    # Directories without a manifest and broken manifests are ignored
    (src_dir / "README-only").mkdir()
    broken = src_dir / "broken"
    broken.mkdir()
    (broken / "devcontainer-feature.json").write_text("{not json")

    return src_dir


@pytest.fixture
def acme_origin() -> str:
    """Origin of the sample 'acme' features repository."""
    return "ghcr.io/acme/features"
