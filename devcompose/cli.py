"""Command implementation: discover, resolve and compose features.

This module wires the catalog, the manifest lookups and the resolver
together and renders the outcome with rich.
"""

from __future__ import annotations

import argparse
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from devcompose.catalog import FeatureCatalog
from devcompose.compose import build_devcontainer, default_options, write_devcontainer
from devcompose.config import ComposerConfig, load_config
from devcompose.errors import InvalidInputError, MalformedReferenceError
from devcompose.logging_utils import get_logger
from devcompose.lookup import CatalogManifestLookup, ChainedManifestLookup, RemoteManifestLookup
from devcompose.reference import FeatureReference
from devcompose.resolver import ManifestLookup, ResolutionResult, resolve

logger = get_logger(__name__)


def apply_overrides(config: ComposerConfig, args: argparse.Namespace) -> ComposerConfig:
    """Apply command line options on top of the loaded configuration."""
    overrides: dict[str, Any] = {}
    if args.account:
        overrides["accounts"] = args.account
    for name in ("branch", "image", "timeout", "workers"):
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    if args.offline:
        overrides["offline"] = True
    config.update(overrides)
    return config


def load_catalog(config: ComposerConfig, args: argparse.Namespace) -> FeatureCatalog:
    """Build the feature catalog from a local directory or fresh clones.

    Parameters
    ----------
    config : ComposerConfig
        Effective configuration
    args : argparse.Namespace
        Parsed command line arguments

    Returns
    -------
    FeatureCatalog
        The catalog, empty when discovery is skipped or offline

    """
    if args.catalog:
        return FeatureCatalog.from_directory(Path(args.catalog), config.accounts[0], config.registry, config.accounts)

    if config.offline or args.skip_discovery:
        return FeatureCatalog(registry=config.registry, default_account=config.accounts[0], accounts=config.accounts)

    with tempfile.TemporaryDirectory(prefix="devcompose-") as workdir:
        return FeatureCatalog.discover(config.accounts, Path(workdir), config.branch, config.registry)


def qualify_selections(catalog: FeatureCatalog, identifiers: list[str]) -> list[FeatureReference]:
    """Qualify the user's feature identifiers.

    Raises
    ------
    InvalidInputError
        If an identifier cannot be parsed

    """
    selections = []
    for identifier in identifiers:
        try:
            selections.append(catalog.qualify(identifier))
        except MalformedReferenceError as e:
            msg = f"Invalid feature {identifier!r}: {e}"
            raise InvalidInputError(msg) from e
    return selections


@contextmanager
def manifest_lookup(config: ComposerConfig, catalog: FeatureCatalog) -> Iterator[ManifestLookup]:
    """Provide the lookup used for resolution: local catalog first, then GitHub."""
    local = CatalogManifestLookup(catalog)
    if config.offline:
        yield local
        return

    with RemoteManifestLookup(branch=config.branch, timeout=config.timeout) as remote:
        yield ChainedManifestLookup(local, remote)


def explicit_options(catalog: FeatureCatalog, result: ResolutionResult) -> dict[str, dict[str, Any]]:
    """Collect option defaults for the explicitly selected features."""
    options = {}
    for ref in result.explicit:
        entry = catalog.find(ref)
        if entry is not None:
            options[str(ref)] = default_options(entry.manifest)
    return options


def render_catalog(console: Console, catalog: FeatureCatalog) -> None:
    """Print the features available in the catalog."""
    table = Table(title="Available Features")
    table.add_column("Feature", style="cyan", no_wrap=True)
    table.add_column("Version")
    table.add_column("Description")
    for entry in sorted(catalog, key=lambda e: e.key):
        table.add_row(entry.key, entry.manifest.version or "latest", entry.description)
    console.print(table)


def render_result(console: Console, result: ResolutionResult) -> None:
    """Print the resolved features, the automatic additions and warnings."""
    table = Table(title="Resolved Features")
    table.add_column("Reference", style="cyan", no_wrap=True)
    table.add_column("Selection")
    for ref in result.all:
        table.add_row(str(ref), "[yellow]dependency[/yellow]" if result.is_implicit(ref) else "explicit")
    console.print(table)

    if result.implicit:
        console.print("The following dependent features were automatically added:")
        for ref in result.implicit_sorted:
            console.print(f"  • {ref}")

    if result.warnings:
        console.print(f"[yellow]{len(result.warnings)} dependencies could not be fully resolved:[/yellow]")
        for warning in result.warnings:
            console.print(f"  [yellow]⚠[/yellow] {warning}", highlight=False)


def run(args: argparse.Namespace, console: Console | None = None) -> int:
    """Run the compose command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments
    console : Console | None, optional
        Console for output, by default a new stdout console

    Returns
    -------
    int
        Process exit code

    Raises
    ------
    DevComposeError
        On configuration errors or invalid feature identifiers

    """
    console = console or Console()
    config = apply_overrides(load_config(Path(args.config) if args.config else None), args)
    catalog = load_catalog(config, args)

    if args.list:
        render_catalog(console, catalog)
        return 0

    selections = qualify_selections(catalog, args.features)
    with manifest_lookup(config, catalog) as lookup:
        result = resolve(selections, lookup, timeout=config.timeout, max_workers=config.workers)
    render_result(console, result)

    if args.output:
        document = build_devcontainer(config.image, result, explicit_options(catalog, result))
        target = write_devcontainer(Path(args.output), document)
        console.print(f"[green]Created {target}[/green]")

    return 0
