"""Manifest lookup capabilities used by the dependency resolver.

A lookup is any callable taking a FeatureReference and returning its
FeatureManifest, or None when the manifest cannot be found.
"""

from __future__ import annotations

import logging
import threading

import httpx

from devcompose.catalog import FeatureCatalog
from devcompose.constants import DEFAULT_BRANCH, DEFAULT_LOOKUP_TIMEOUT, RAW_MANIFEST_URL
from devcompose.errors import ManifestUnavailableError
from devcompose.manifest import FeatureManifest
from devcompose.reference import FeatureReference
from devcompose.resolver import ManifestLookup

# Get logger
logger = logging.getLogger(__name__)

HTTP_OK = 200


class CatalogManifestLookup:
    """Look up manifests in a catalog of locally cloned features."""

    def __init__(self, catalog: FeatureCatalog) -> None:
        self.catalog = catalog

    def __call__(self, ref: FeatureReference) -> FeatureManifest | None:
        entry = self.catalog.find(ref)
        if entry is None:
            return None
        return entry.manifest


class RemoteManifestLookup:
    """Fetch manifests from the raw GitHub content of ``<account>/features``.

    Results, including misses, are cached per reference for the lifetime of
    the lookup so a feature is fetched at most once.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        branch: str = DEFAULT_BRANCH,
        timeout: float = DEFAULT_LOOKUP_TIMEOUT,
    ) -> None:
        """Initialize the remote lookup.

        Parameters
        ----------
        client : httpx.Client | None, optional
            HTTP client to use, by default a new client owned by the lookup
        branch : str, optional
            Branch of the features repository, by default ``main``
        timeout : float, optional
            Request timeout in seconds, by default DEFAULT_LOOKUP_TIMEOUT

        """
        self._owns_client = client is None
        self.client = client or httpx.Client(follow_redirects=True)
        self.branch = branch
        self.timeout = timeout
        self._cache: dict[FeatureReference, FeatureManifest | ManifestUnavailableError] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> RemoteManifestLookup:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client if the lookup created it."""
        if self._owns_client:
            self.client.close()

    def manifest_url(self, ref: FeatureReference) -> str:
        """Return the raw manifest URL for a reference."""
        return RAW_MANIFEST_URL.format(account=ref.account, branch=self.branch, name=ref.name)

    def __call__(self, ref: FeatureReference) -> FeatureManifest | None:
        with self._lock:
            cached = self._cache.get(ref)
        if isinstance(cached, ManifestUnavailableError):
            raise cached
        if cached is not None:
            return cached

        try:
            manifest = self.fetch(ref)
        except ManifestUnavailableError as e:
            with self._lock:
                self._cache[ref] = e
            raise

        with self._lock:
            self._cache[ref] = manifest
        return manifest

    def fetch(self, ref: FeatureReference) -> FeatureManifest:
        """Fetch and parse the manifest of a reference.

        Parameters
        ----------
        ref : FeatureReference
            The feature to fetch

        Returns
        -------
        FeatureManifest
            The parsed manifest

        Raises
        ------
        ManifestUnavailableError
            If the request fails, times out, or returns an invalid document

        """
        url = self.manifest_url(ref)
        logger.debug("Fetching manifest for %s from %s", ref, url)

        try:
            response = self.client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            msg = f"Timed out fetching manifest for {ref} from {url}"
            raise ManifestUnavailableError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Could not fetch manifest for {ref} from {url}: {e}"
            raise ManifestUnavailableError(msg) from e

        if response.status_code != HTTP_OK:
            msg = f"Fetching manifest for {ref} returned HTTP {response.status_code}"
            raise ManifestUnavailableError(msg)

        return FeatureManifest.from_json(response.text)


class ChainedManifestLookup:
    """Try several lookups in order and return the first manifest found.

    A lookup raising ManifestUnavailableError does not stop the chain; the
    last such error is raised only when no lookup finds the manifest.
    """

    def __init__(self, *lookups: ManifestLookup) -> None:
        self.lookups = lookups

    def __call__(self, ref: FeatureReference) -> FeatureManifest | None:
        error: ManifestUnavailableError | None = None
        for lookup in self.lookups:
            try:
                manifest = lookup(ref)
            except ManifestUnavailableError as e:
                error = e
                continue
            if manifest is not None:
                return manifest
        if error is not None:
            raise error
        return None
