"""Feature discovery from cloned feature repositories.

Feature repositories follow the ``<account>/features`` layout, with one
directory per feature under ``src/`` holding its devcontainer-feature.json.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import NamedTuple

from devcompose.constants import (
    DEFAULT_ACCOUNTS,
    DEFAULT_BRANCH,
    DEFAULT_REGISTRY,
    FEATURE_REPOSITORY_URL,
    FEATURE_SOURCE_DIR,
    LATEST_TAG,
    MANIFEST_FILENAME,
)
from devcompose.errors import MalformedReferenceError, ManifestUnavailableError
from devcompose.manifest import FeatureManifest
from devcompose.reference import FeatureReference, feature_origin

# Get logger
logger = logging.getLogger(__name__)

CLONE_TIMEOUT_SECONDS = 120


class CatalogEntry(NamedTuple):
    """A feature found in a local clone."""

    account: str
    name: str
    path: Path
    manifest: FeatureManifest

    @property
    def key(self) -> str:
        """Return the ``<account>:<name>`` key of the feature."""
        return f"{self.account}:{self.name}"

    @property
    def description(self) -> str:
        """Return the manifest description or a placeholder."""
        return self.manifest.description or "No description."

    def reference(self, registry: str = DEFAULT_REGISTRY, tag: str | None = None) -> FeatureReference:
        """Build the fully qualified reference of the feature.

        Parameters
        ----------
        registry : str, optional
            Registry host, by default ``ghcr.io``
        tag : str | None, optional
            Explicit tag, by default the manifest version or ``latest``

        Returns
        -------
        FeatureReference
            Reference of the form ``<registry>/<account>/features/<name>:<tag>``

        """
        return FeatureReference(
            feature_origin(self.account, registry),
            self.name,
            tag or self.manifest.version or LATEST_TAG,
        )


def clone_feature_repository(account: str, workdir: Path, branch: str = DEFAULT_BRANCH) -> Path | None:
    """Shallow clone ``<account>/features`` and return its ``src`` directory.

    Parameters
    ----------
    account : str
        GitHub account owning the features repository
    workdir : Path
        Directory the repository is cloned into, as ``<workdir>/<account>``
    branch : str, optional
        Branch to clone, by default ``main``

    Returns
    -------
    Path | None
        Path to the ``src`` directory, None if the clone failed

    """
    if not shutil.which("git"):
        logger.warning("git is not installed; cannot clone features for %s", account)
        return None

    repo = FEATURE_REPOSITORY_URL.format(account=account)
    target_dir = workdir / account
    logger.info("Cloning %s...", repo)

    try:
        result = subprocess.run(
            ["git", "clone", "--quiet", "--depth", "1", "--branch", branch, repo, str(target_dir)],  # noqa: S607
            check=False,
            capture_output=True,
            text=True,
            timeout=CLONE_TIMEOUT_SECONDS,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        logger.warning("Failed to clone %s: %s", repo, e)
        return None

    if result.returncode != 0:
        logger.warning("Failed to clone %s: %s", repo, result.stderr.strip())
        return None

    logger.info("Cloned %s/features", account)
    return target_dir / FEATURE_SOURCE_DIR


class FeatureCatalog:
    """Features available in local clones, keyed by ``<account>:<name>``."""

    def __init__(
        self,
        registry: str = DEFAULT_REGISTRY,
        default_account: str | None = None,
        accounts: Iterable[str] | None = None,
    ) -> None:
        """Initialize an empty catalog.

        Parameters
        ----------
        registry : str, optional
            Registry host used for references, by default ``ghcr.io``
        default_account : str | None, optional
            Account used for bare feature ids not found in the catalog,
            by default the first configured account
        accounts : Iterable[str] | None, optional
            Configured accounts, recognised in ``<account>:<name>`` keys even
            when nothing was scanned for them, by default the default accounts

        """
        self.registry = registry
        self.accounts = list(accounts) if accounts is not None else list(DEFAULT_ACCOUNTS)
        self.default_account = default_account or (self.accounts[0] if self.accounts else DEFAULT_ACCOUNTS[0])
        self._entries: dict[str, CatalogEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    @property
    def known_accounts(self) -> list[str]:
        """Return the default, configured and scanned accounts, without duplicates."""
        scanned = [entry.account for entry in self._entries.values()]
        return list(dict.fromkeys([self.default_account, *self.accounts, *scanned]))

    def get(self, key: str) -> CatalogEntry | None:
        """Return the entry for an ``<account>:<name>`` key."""
        return self._entries.get(key)

    def find(self, ref: FeatureReference) -> CatalogEntry | None:
        """Return the local entry for a reference, ignoring its tag."""
        return self._entries.get(ref.key)

    def add(self, entry: CatalogEntry) -> None:
        """Add or replace an entry."""
        self._entries[entry.key] = entry

    def scan(self, src_path: Path, account: str) -> int:
        """Add every feature found under a repository's ``src`` directory.

        Parameters
        ----------
        src_path : Path
            The ``src`` directory of a features repository
        account : str
            Account owning the repository

        Returns
        -------
        int
            Number of features added

        """
        if not src_path.is_dir():
            logger.warning("Feature source directory %s does not exist", src_path)
            return 0

        added = 0
        for feature_path in sorted(src_path.iterdir()):
            manifest_file = feature_path / MANIFEST_FILENAME
            if not manifest_file.is_file():
                continue
            try:
                manifest = FeatureManifest.load(manifest_file)
            except ManifestUnavailableError as e:
                logger.warning("Skipping feature %s: %s", feature_path.name, e)
                continue

            self.add(CatalogEntry(account, feature_path.name, feature_path, manifest))
            added += 1
            logger.debug("Discovered feature %s:%s", account, feature_path.name)

        return added

    @classmethod
    def from_directory(
        cls,
        src_path: Path,
        account: str,
        registry: str = DEFAULT_REGISTRY,
        accounts: Iterable[str] | None = None,
    ) -> FeatureCatalog:
        """Build a catalog from a single ``src`` directory."""
        catalog = cls(registry=registry, default_account=account, accounts=accounts)
        catalog.scan(src_path, account)
        return catalog

    @classmethod
    def discover(
        cls,
        accounts: list[str],
        workdir: Path,
        branch: str = DEFAULT_BRANCH,
        registry: str = DEFAULT_REGISTRY,
    ) -> FeatureCatalog:
        """Clone each account's features repository and scan it.

        Accounts whose repository cannot be cloned are skipped.

        Parameters
        ----------
        accounts : list[str]
            GitHub accounts to clone, in priority order
        workdir : Path
            Directory to clone into
        branch : str, optional
            Branch to clone, by default ``main``
        registry : str, optional
            Registry host used for references, by default ``ghcr.io``

        Returns
        -------
        FeatureCatalog
            The merged catalog

        """
        catalog = cls(registry=registry, default_account=accounts[0] if accounts else None, accounts=accounts)
        for account in accounts:
            src_path = clone_feature_repository(account, workdir, branch)
            if src_path is None:
                continue
            catalog.scan(src_path, account)
        logger.info("Discovered %d features across %d accounts", len(catalog), len(accounts))
        return catalog

    def qualify(self, identifier: str) -> FeatureReference:
        """Turn a user supplied identifier into a fully qualified reference.

        Accepted forms are a full reference (``<origin>/<name>[:<tag>]``), a
        catalog key (``<account>:<name>[:<tag>]``) and a bare feature id
        (``<name>[:<tag>]``). Catalog keys are recognised for every known
        account, scanned or not. Bare ids resolve to the first catalog entry
        with that name, or to the default account when none exists.

        Parameters
        ----------
        identifier : str
            The identifier to qualify

        Returns
        -------
        FeatureReference
            The qualified reference

        Raises
        ------
        MalformedReferenceError
            If the identifier cannot be parsed, or names both an account and
            a feature

        """
        stripped = identifier.strip()
        if "/" in stripped:
            return FeatureReference.parse(stripped)

        entry = self._entries.get(stripped)
        if entry is not None:
            return entry.reference(self.registry)

        account, separator, rest = stripped.partition(":")
        if separator and account in self.known_accounts:
            if any(candidate.name == account for candidate in self._entries.values()):
                msg = f"{identifier!r} is ambiguous: {account!r} is both an account and a feature"
                raise MalformedReferenceError(msg)
            return FeatureReference.parse(rest, default_origin=feature_origin(account, self.registry))

        name = account
        for candidate in self._entries.values():
            if candidate.name == name:
                ref = FeatureReference.parse(stripped, default_origin=feature_origin(candidate.account, self.registry))
                return ref if separator else ref._replace(tag=candidate.reference(self.registry).tag)

        return FeatureReference.parse(stripped, default_origin=feature_origin(self.default_account, self.registry))
