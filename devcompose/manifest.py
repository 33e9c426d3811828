"""Feature manifest (devcontainer-feature.json) loading."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, NamedTuple

from devcompose.errors import ManifestUnavailableError


class FeatureManifest(NamedTuple):
    """Declared metadata for one feature."""

    id: str
    description: str = ""
    version: str | None = None
    options: Mapping[str, Any] = MappingProxyType({})
    depends_on: Mapping[str, Any] = MappingProxyType({})
    path: Path | None = None

    @property
    def dependency_keys(self) -> list[str]:
        """Return the ``dependsOn`` keys in declaration order."""
        return list(self.depends_on)

    @classmethod
    def from_dict(cls, data: Any, path: Path | None = None) -> FeatureManifest:
        """Build a manifest from decoded devcontainer-feature.json content.

        Parameters
        ----------
        data : Any
            Decoded JSON document
        path : Path | None, optional
            File the document was read from, by default None

        Returns
        -------
        FeatureManifest
            The manifest record

        Raises
        ------
        ManifestUnavailableError
            If the document is not an object or lacks a string ``id``

        """
        source = str(path) if path else "manifest"
        if not isinstance(data, dict):
            msg = f"{source} is not a JSON object"
            raise ManifestUnavailableError(msg)

        feature_id = data.get("id")
        if not isinstance(feature_id, str) or not feature_id:
            msg = f"{source} has no feature id"
            raise ManifestUnavailableError(msg)

        description = data.get("description")
        version = data.get("version")
        options = data.get("options")
        depends_on = data.get("dependsOn")

        return cls(
            id=feature_id,
            description=description if isinstance(description, str) else "",
            version=str(version) if version is not None else None,
            options=options if isinstance(options, dict) else {},
            depends_on=depends_on if isinstance(depends_on, dict) else {},
            path=path,
        )

    @classmethod
    def from_json(cls, text: str, path: Path | None = None) -> FeatureManifest:
        """Parse manifest JSON text.

        Raises
        ------
        ManifestUnavailableError
            If the text is not valid JSON or not a valid manifest

        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON in {path or 'manifest'}: {e}"
            raise ManifestUnavailableError(msg) from e
        return cls.from_dict(data, path)

    @classmethod
    def load(cls, manifest_file: Path) -> FeatureManifest:
        """Load a manifest from a devcontainer-feature.json file.

        Parameters
        ----------
        manifest_file : Path
            Path to the devcontainer-feature.json file

        Returns
        -------
        FeatureManifest
            The loaded manifest

        Raises
        ------
        ManifestUnavailableError
            If the file cannot be read or parsed

        """
        try:
            with open(manifest_file, encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            msg = f"Could not read {manifest_file}: {e}"
            raise ManifestUnavailableError(msg) from e
        return cls.from_json(content, manifest_file)
