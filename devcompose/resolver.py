"""Feature dependency resolution.

The resolver computes the transitive closure of the ``dependsOn`` declarations
reachable from a set of explicitly selected features. Every reference is looked
up at most once, cycles and diamond dependencies are absorbed by the visited
set, and lookup failures degrade to warnings instead of aborting the run.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import NamedTuple

from devcompose.errors import (
    InvalidInputError,
    MalformedReferenceError,
    ManifestUnavailableError,
    ResolutionCancelledError,
)
from devcompose.manifest import FeatureManifest
from devcompose.reference import FeatureReference, normalize_dependency

# Get logger
logger = logging.getLogger(__name__)

ManifestLookup = Callable[[FeatureReference], "FeatureManifest | None"]
LookupOutcome = tuple["FeatureManifest | None", "str | None"]


class ResolutionResult(NamedTuple):
    """Outcome of a resolution run."""

    all: list[FeatureReference]
    implicit: frozenset[FeatureReference]
    explicit: frozenset[FeatureReference]
    warnings: list[str]

    @property
    def implicit_sorted(self) -> list[FeatureReference]:
        """Return the implicit additions in the same order as ``all``."""
        return [ref for ref in self.all if ref in self.implicit]

    def is_implicit(self, ref: FeatureReference) -> bool:
        """Check whether a reference was added only as a dependency."""
        return ref in self.implicit


class ResolutionState:
    """Working set of a single resolution run.

    The state is created per run and thrown away once the result is built, so
    an aborted run leaves nothing behind.
    """

    def __init__(self, explicit: Iterable[FeatureReference]) -> None:
        """Initialize the state with the user's explicit selections.

        Parameters
        ----------
        explicit : Iterable[FeatureReference]
            References chosen directly by the user

        """
        self.explicit: frozenset[FeatureReference] = frozenset(explicit)
        self.visited: set[FeatureReference] = set()
        self.warnings: list[str] = []
        self._lock = threading.Lock()

    def mark_visited(self, ref: FeatureReference) -> bool:
        """Mark a reference as visited.

        Parameters
        ----------
        ref : FeatureReference
            The reference about to be expanded

        Returns
        -------
        bool
            True if the reference had not been visited before

        """
        with self._lock:
            if ref in self.visited:
                return False
            self.visited.add(ref)
            return True

    def add_warning(self, message: str) -> None:
        """Record a recoverable problem and log it."""
        with self._lock:
            self.warnings.append(message)
        logger.warning(message)

    def to_result(self) -> ResolutionResult:
        """Build the final result from the visited set.

        Returns
        -------
        ResolutionResult
            Sorted closure, implicit additions and collected warnings

        """
        with self._lock:
            ordered = sorted(self.visited, key=str)
            implicit = frozenset(ref for ref in ordered if ref not in self.explicit)
            return ResolutionResult(ordered, implicit, self.explicit, list(self.warnings))


class DependencyResolver:
    """Resolve feature dependencies through a manifest lookup capability."""

    def __init__(
        self,
        manifest_lookup: ManifestLookup,
        *,
        timeout: float | None = None,
        max_workers: int = 1,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the resolver.

        Parameters
        ----------
        manifest_lookup : ManifestLookup
            Callable returning the manifest of a reference, or None when the
            manifest cannot be found
        timeout : float | None, optional
            Seconds allowed for each lookup, by default None (unbounded)
        max_workers : int, optional
            Number of lookups run in parallel per level, by default 1
        cancel_event : threading.Event | None, optional
            Event checked between references to abort the run, by default None

        Raises
        ------
        InvalidInputError
            If the lookup is missing or the limits are not positive

        """
        if manifest_lookup is None or not callable(manifest_lookup):
            msg = "A manifest lookup capability is required"
            raise InvalidInputError(msg)
        if max_workers < 1:
            msg = f"max_workers must be at least 1, got {max_workers}"
            raise InvalidInputError(msg)
        if timeout is not None and timeout <= 0:
            msg = f"timeout must be positive, got {timeout}"
            raise InvalidInputError(msg)

        self.manifest_lookup = manifest_lookup
        self.timeout = timeout
        self.max_workers = max_workers
        self.cancel_event = cancel_event
        self._executor: ThreadPoolExecutor | None = None

    def resolve(self, explicit_selections: Iterable[FeatureReference | str]) -> ResolutionResult:
        """Compute the dependency closure of the explicit selections.

        Parameters
        ----------
        explicit_selections : Iterable[FeatureReference | str]
            Fully qualified references, as values or strings

        Returns
        -------
        ResolutionResult
            All required references, the implicit additions and any warnings

        Raises
        ------
        InvalidInputError
            If an explicit selection cannot be parsed
        ResolutionCancelledError
            If the cancel event is set while the run is in progress

        """
        explicit = self.__coerce_selections(explicit_selections)
        state = ResolutionState(explicit)

        logger.debug("Resolving dependencies for %d explicit features", len(explicit))

        frontier = sorted(explicit, key=str)
        try:
            while frontier:
                pending = []
                for ref in frontier:
                    self.__check_cancelled()
                    if state.mark_visited(ref):
                        pending.append(ref)

                frontier = []
                for ref, manifest in self.__lookup_level(pending, state):
                    self.__check_cancelled()
                    if manifest is not None:
                        frontier.extend(self.__expand(ref, manifest, state))
        finally:
            self.__shutdown_executor()

        result = state.to_result()
        logger.info(
            "Resolved %d features (%d added as dependencies, %d warnings)",
            len(result.all),
            len(result.implicit),
            len(result.warnings),
        )
        return result

    @staticmethod
    def __coerce_selections(explicit_selections: Iterable[FeatureReference | str]) -> list[FeatureReference]:
        """Convert the explicit selections into references.

        Raises
        ------
        InvalidInputError
            If a selection is neither a reference nor a parsable string

        """
        if explicit_selections is None:
            msg = "Explicit selections must be an iterable of feature references"
            raise InvalidInputError(msg)

        references = []
        for selection in explicit_selections:
            if isinstance(selection, FeatureReference):
                references.append(selection)
            elif isinstance(selection, str):
                try:
                    references.append(FeatureReference.parse(selection))
                except MalformedReferenceError as e:
                    msg = f"Invalid explicit selection: {e}"
                    raise InvalidInputError(msg) from e
            else:
                msg = f"Invalid explicit selection: {selection!r}"
                raise InvalidInputError(msg)
        return references

    def __check_cancelled(self) -> None:
        """Raise if the run has been cancelled."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            msg = "Dependency resolution was cancelled"
            raise ResolutionCancelledError(msg)

    def __lookup_level(
        self, pending: list[FeatureReference], state: ResolutionState
    ) -> Iterator[tuple[FeatureReference, FeatureManifest | None]]:
        """Look up the manifests of the references discovered in one level.

        Lookups run inline when neither a timeout nor parallelism is
        requested; otherwise they run on a thread pool and each lookup may
        run for at most ``timeout`` seconds from the moment it starts.
        Warnings are recorded here, in submission order, so worker threads
        never touch the state.

        """
        if self.timeout is None and self.max_workers == 1:
            for ref in pending:
                self.__check_cancelled()
                manifest, warning = self.__lookup(ref)
                if warning:
                    state.add_warning(warning)
                yield ref, manifest
            return

        outcomes = self.__run_level(pending)
        for ref in pending:
            manifest, warning = outcomes[ref]
            if warning:
                state.add_warning(warning)
            yield ref, manifest

    def __run_level(self, pending: list[FeatureReference]) -> dict[FeatureReference, LookupOutcome]:
        """Run the lookups of one level on the pool and collect their outcomes.

        A lookup that overruns the timeout is abandoned together with its
        pool. Lookups still queued behind it are moved to a fresh pool so
        each one gets its own full timeout.

        Parameters
        ----------
        pending : list[FeatureReference]
            References to look up

        Returns
        -------
        dict[FeatureReference, LookupOutcome]
            Manifest (or None) and optional warning per reference

        """
        started: dict[FeatureReference, float] = {}
        started_lock = threading.Lock()

        def timed_lookup(ref: FeatureReference) -> LookupOutcome:
            with started_lock:
                started[ref] = time.monotonic()
            return self.__lookup(ref)

        def submit(refs: Iterable[FeatureReference]) -> None:
            executor = self.__get_executor()
            for ref in refs:
                future = executor.submit(timed_lookup, ref)
                futures[future] = ref
                not_done.add(future)

        outcomes: dict[FeatureReference, LookupOutcome] = {}
        futures: dict[Future[LookupOutcome], FeatureReference] = {}
        not_done: set[Future[LookupOutcome]] = set()
        submit(pending)

        while not_done:
            self.__check_cancelled()
            with started_lock:
                wait_for = self.__next_wait([started[futures[f]] for f in not_done if futures[f] in started])
            done, not_done = wait(not_done, timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                outcomes[futures[future]] = future.result()

            if self.timeout is None:
                continue

            now = time.monotonic()
            with started_lock:
                expired = {f for f in not_done if futures[f] in started and now - started[futures[f]] >= self.timeout}
            if not expired:
                continue

            for future in expired:
                ref = futures[future]
                logger.debug("Abandoning manifest lookup for %s", ref)
                outcomes[ref] = (None, f"Manifest lookup for {ref} timed out after {self.timeout} seconds")
            not_done -= expired

            # Queued lookups would wait behind the stuck worker forever
            queued = [f for f in not_done if f.cancel()]
            not_done.difference_update(queued)
            self.__shutdown_executor()
            submit(futures[f] for f in queued)

        return outcomes

    def __next_wait(self, start_times: list[float]) -> float | None:
        """Return how long to wait before the earliest running lookup expires."""
        if self.timeout is None:
            return None
        if not start_times:
            return self.timeout
        return max(0.0, min(start_times) + self.timeout - time.monotonic())

    def __lookup(self, ref: FeatureReference) -> LookupOutcome:
        """Call the manifest lookup, converting failures into a warning message."""
        try:
            manifest = self.manifest_lookup(ref)
        except ManifestUnavailableError as e:
            return None, f"Manifest for {ref} is unavailable: {e}"
        except Exception as e:
            return None, f"Manifest lookup for {ref} failed: {e}"

        if manifest is None:
            return None, f"Manifest for {ref} not found; its dependencies were not resolved"
        logger.debug("Loaded manifest for %s (%d dependencies)", ref, len(manifest.depends_on))
        return manifest, None

    @staticmethod
    def __expand(ref: FeatureReference, manifest: FeatureManifest, state: ResolutionState) -> list[FeatureReference]:
        """Normalize the dependencies declared by a manifest.

        Malformed keys are dropped with a warning.

        """
        dependencies = []
        for key in manifest.dependency_keys:
            try:
                dependency = normalize_dependency(key, ref)
            except MalformedReferenceError as e:
                state.add_warning(f"Ignoring dependency {key!r} of {ref}: {e}")
                continue
            logger.debug("%s depends on %s", ref, dependency)
            dependencies.append(dependency)
        return dependencies

    def __get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="manifest-lookup")
        return self._executor

    def __shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None


def resolve(
    explicit_selections: Iterable[FeatureReference | str],
    manifest_lookup: ManifestLookup,
    *,
    timeout: float | None = None,
    max_workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> ResolutionResult:
    """Resolve the dependency closure of a set of explicit selections.

    Parameters
    ----------
    explicit_selections : Iterable[FeatureReference | str]
        Fully qualified references chosen by the user
    manifest_lookup : ManifestLookup
        Callable returning a reference's manifest or None when not found
    timeout : float | None, optional
        Seconds allowed for each lookup, by default None
    max_workers : int, optional
        Number of parallel lookups per level, by default 1
    cancel_event : threading.Event | None, optional
        Event that aborts the run when set, by default None

    Returns
    -------
    ResolutionResult
        All required references, the implicit additions and any warnings

    """
    resolver = DependencyResolver(
        manifest_lookup,
        timeout=timeout,
        max_workers=max_workers,
        cancel_event=cancel_event,
    )
    return resolver.resolve(explicit_selections)
