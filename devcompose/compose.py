"""Compose devcontainer.json documents from resolved features."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from devcompose.constants import DEVCONTAINER_DIR, DEVCONTAINER_FILENAME
from devcompose.manifest import FeatureManifest
from devcompose.resolver import ResolutionResult

# Get logger
logger = logging.getLogger(__name__)


def default_options(manifest: FeatureManifest) -> dict[str, Any]:
    """Collect the default value of every option a manifest declares.

    Options without a ``default`` are left out so the feature's own default
    applies at build time.

    Parameters
    ----------
    manifest : FeatureManifest
        The feature manifest

    Returns
    -------
    dict[str, Any]
        Mapping of option name to default value

    """
    defaults = {}
    for name, schema in manifest.options.items():
        if isinstance(schema, dict) and "default" in schema:
            defaults[name] = schema["default"]
    return defaults


def build_devcontainer(
    image: str,
    result: ResolutionResult,
    options: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build the devcontainer.json document for a resolution.

    Parameters
    ----------
    image : str
        Base container image
    result : ResolutionResult
        Resolved features
    options : Mapping[str, Mapping[str, Any]] | None, optional
        Feature options keyed by full reference string or by
        ``<account>:<name>``, by default None

    Returns
    -------
    dict[str, Any]
        Document with ``image`` and, when any feature is resolved, ``features``

    """
    options = options or {}
    document: dict[str, Any] = {"image": image}

    features = {}
    for ref in result.all:
        feature_options = options.get(str(ref))
        if feature_options is None:
            feature_options = options.get(ref.key, {})
        features[str(ref)] = dict(feature_options)

    if features:
        document["features"] = features
    return document


def write_devcontainer(dest_dir: Path, document: Mapping[str, Any]) -> Path:
    """Write a devcontainer.json document into a project directory.

    Parameters
    ----------
    dest_dir : Path
        Project directory; ``.devcontainer`` is created inside it
    document : Mapping[str, Any]
        The document to write

    Returns
    -------
    Path
        Path of the written devcontainer.json

    """
    devcontainer_dir = dest_dir / DEVCONTAINER_DIR
    devcontainer_dir.mkdir(parents=True, exist_ok=True)
    target = devcontainer_dir / DEVCONTAINER_FILENAME

    with open(target, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
        f.write("\n")

    logger.info("%s created at %s", DEVCONTAINER_FILENAME, target)
    return target
