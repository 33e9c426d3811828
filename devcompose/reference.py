"""Feature reference parsing and normalization.

A feature reference has the string form ``<origin>/<name>:<tag>``, for example
``ghcr.io/devcontainers/features/docker-in-docker:2``. The origin identifies the
registry namespace, the name identifies the feature and the tag its version.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from devcompose.constants import DEFAULT_REGISTRY, FEATURES_NAMESPACE, LATEST_TAG, LOCAL_FEATURE_PREFIXES
from devcompose.errors import MalformedReferenceError

_ORIGIN_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")

# Expected segments in a registry origin such as ghcr.io/<account>/features
ORIGIN_ACCOUNT_SEGMENTS = 3


class FeatureReference(NamedTuple):
    """Fully qualified reference to a devcontainer feature."""

    origin: str
    name: str
    tag: str = LATEST_TAG

    def __str__(self) -> str:
        """Return the ``<origin>/<name>:<tag>`` form of the reference.

        Returns
        -------
        str
            The canonical string form used for logging, sorting and output

        """
        return f"{self.origin}/{self.name}:{self.tag}"

    @property
    def account(self) -> str:
        """Return the account owning the feature repository.

        For ``ghcr.io/<account>/features`` origins this is the middle segment;
        for any other origin the last segment is used.

        Returns
        -------
        str
            The account name

        """
        segments = self.origin.split("/")
        if len(segments) == ORIGIN_ACCOUNT_SEGMENTS and segments[2] == FEATURES_NAMESPACE:
            return segments[1]
        return segments[-1]

    @property
    def key(self) -> str:
        """Return the ``<account>:<name>`` catalog key of the reference."""
        return f"{self.account}:{self.name}"

    @classmethod
    def parse(cls, text: str, default_origin: str | None = None) -> FeatureReference:
        """Parse a reference string.

        Parameters
        ----------
        text : str
            Reference in ``<origin>/<name>[:<tag>]`` form, or a bare
            ``<name>[:<tag>]`` when ``default_origin`` is given
        default_origin : str | None, optional
            Origin used when ``text`` has none, by default None

        Returns
        -------
        FeatureReference
            The parsed reference with the tag defaulted to ``latest``

        Raises
        ------
        MalformedReferenceError
            If the text cannot be split into a valid origin, name and tag

        """
        stripped = text.strip() if isinstance(text, str) else ""
        if not stripped:
            msg = f"Empty feature reference: {text!r}"
            raise MalformedReferenceError(msg)

        origin, _, last_segment = stripped.rpartition("/")
        if not origin:
            if "/" in stripped or default_origin is None:
                msg = f"Feature reference has no origin: {text!r}"
                raise MalformedReferenceError(msg)
            origin = default_origin

        name, separator, tag = last_segment.partition(":")
        if not separator:
            tag = LATEST_TAG

        if not all(_ORIGIN_SEGMENT_PATTERN.match(segment) for segment in origin.split("/")):
            msg = f"Invalid origin {origin!r} in feature reference {text!r}"
            raise MalformedReferenceError(msg)
        if not _NAME_PATTERN.match(name):
            msg = f"Invalid feature name {name!r} in feature reference {text!r}"
            raise MalformedReferenceError(msg)
        if not _TAG_PATTERN.match(tag):
            msg = f"Invalid tag {tag!r} in feature reference {text!r}"
            raise MalformedReferenceError(msg)

        return cls(origin, name, tag)


def feature_origin(account: str, registry: str = DEFAULT_REGISTRY) -> str:
    """Build the registry origin for an account's feature repository.

    Parameters
    ----------
    account : str
        GitHub account owning the ``features`` repository
    registry : str, optional
        Container registry host, by default ``ghcr.io``

    Returns
    -------
    str
        Origin of the form ``<registry>/<account>/features``

    """
    return f"{registry}/{account}/{FEATURES_NAMESPACE}"


def strip_local_prefix(key: str) -> str:
    """Strip the local feature directory prefixes from a dependency key."""
    bare = key.strip()
    for prefix in LOCAL_FEATURE_PREFIXES:
        bare = bare.removeprefix(prefix)
    return bare


def normalize_dependency(key: str, referrer: FeatureReference) -> FeatureReference:
    """Normalize a ``dependsOn`` key into a fully qualified reference.

    Local prefixes (``./features/`` then ``./``) are stripped first. A key
    without an origin is assumed to live next to the feature declaring it,
    and a key without a tag gets ``latest``.

    Parameters
    ----------
    key : str
        The dependency key as written in the manifest
    referrer : FeatureReference
        The feature whose manifest declares the dependency

    Returns
    -------
    FeatureReference
        The normalized dependency reference

    Raises
    ------
    MalformedReferenceError
        If the key cannot be parsed

    """
    return FeatureReference.parse(strip_local_prefix(key), default_origin=referrer.origin)
