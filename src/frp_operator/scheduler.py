"""Scheduler module for the frp operator.

This module runs one watch and reconcile loop per watched kind. Watch events
and periodic resyncs put object keys on a delayed work queue, and worker
threads reconcile them one at a time per key.
"""

import logging
import threading
import time
from collections.abc import Callable, Hashable

from kubernetes import watch
from kubernetes.client.exceptions import ApiException

from frp_operator.exceptions import ConflictError, FrpOperatorError, ResolutionError
from frp_operator.kubernetes.base import KubernetesResource, is_conflict

logger = logging.getLogger(__name__)

# Fixed delay before a failed reconcile is retried
ERROR_BACKOFF = 15
# Server-side timeout of one watch request
WATCH_TIMEOUT = 300

Key = tuple[str, str]
Mapper = Callable[[object], list[Key]]


def error_policy(kind: str, key: Key, error: Exception, backoff: float = ERROR_BACKOFF) -> float:
    """Log a failed reconcile and decide when to retry it.

    Every failure is logged and retried after the same fixed backoff.

    Args:
        kind: Kind of the reconciled object.
        key: ``(namespace, name)`` of the object.
        error: The error raised by the reconcile.
        backoff: Seconds before the retry.

    Returns:
        Seconds until the object is reconciled again.
    """
    namespace, name = key
    if isinstance(error, (ResolutionError, ConflictError)):
        logger.warning(f"Reconcile of {kind} {namespace}/{name} postponed: {error}")
    elif isinstance(error, ApiException) and is_conflict(error):
        logger.warning(f"Reconcile of {kind} {namespace}/{name} hit a conflict: {error.reason}")
    elif isinstance(error, ApiException):
        logger.error(f"Reconcile of {kind} {namespace}/{name} failed: {error.status} {error.reason}")
    elif isinstance(error, FrpOperatorError):
        logger.error(f"Reconcile of {kind} {namespace}/{name} failed: {error}")
    else:
        logger.exception(f"Unexpected error reconciling {kind} {namespace}/{name}: {error}", exc_info=error)
    return backoff


class WorkQueue:
    """Delayed queue of keys, handing each key to at most one worker at a time.

    A key added while it is being processed is held back and scheduled again
    once the worker is done with it. Adding a key that is already waiting only
    ever moves it earlier.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._due: dict[Hashable, float] = {}
        self._deferred: dict[Hashable, float] = {}
        self._processing: set[Hashable] = set()
        self._shutdown = False

    def __len__(self) -> int:
        with self._condition:
            return len(self._due) + len(self._deferred)

    def add(self, key: Hashable, delay: float = 0) -> None:
        """Schedule a key ``delay`` seconds from now."""
        due = time.monotonic() + delay
        with self._condition:
            if self._shutdown:
                return
            pending = self._deferred if key in self._processing else self._due
            if key not in pending or due < pending[key]:
                pending[key] = due
            self._condition.notify()

    def get(self) -> Hashable | None:
        """Block until a key is due and claim it.

        Returns:
            The key, or None once the queue is shut down.
        """
        with self._condition:
            while not self._shutdown:
                now = time.monotonic()
                ready = [(due, key) for key, due in self._due.items() if due <= now]
                if ready:
                    _, key = min(ready)
                    del self._due[key]
                    self._processing.add(key)
                    return key
                timeout = min(self._due.values()) - now if self._due else None
                self._condition.wait(timeout)
            return None

    def done(self, key: Hashable) -> None:
        """Release a key claimed with ``get``."""
        with self._condition:
            self._processing.discard(key)
            if key in self._deferred:
                self._due[key] = self._deferred.pop(key)
                self._condition.notify()

    def shutdown(self) -> None:
        with self._condition:
            self._shutdown = True
            self._condition.notify_all()


class ReconcileLoop:
    """Watch and reconcile loop of one kind of object."""

    def __init__(
        self,
        kind: str,
        handler: KubernetesResource,
        reconcile: Callable[[str, str], float | None],
        workers: int = 1,
        error_backoff: float = ERROR_BACKOFF,
    ):
        """Initialize the loop.

        Args:
            kind: Kind of the reconciled objects, for logging.
            handler: Resource handler of the reconciled kind.
            reconcile: Reconciles ``(namespace, name)`` and returns the requeue delay or None.
            workers: Number of worker threads.
            error_backoff: Seconds before a failed reconcile is retried.
        """
        self.kind = kind
        self.handler = handler
        self.reconcile = reconcile
        self.workers = workers
        self.error_backoff = error_backoff
        self.queue = WorkQueue()
        self.watches: list[tuple[KubernetesResource, Mapper]] = [(handler, self._own_key)]

    def _own_key(self, resource) -> list[Key]:
        return [(self.handler.get_resource_namespace(resource), self.handler.get_resource_name(resource))]

    def add_watch(self, handler: KubernetesResource, mapper: Mapper) -> None:
        """Also reconcile objects related to another kind.

        Args:
            handler: Resource handler of the other kind.
            mapper: Maps an object of the other kind to the keys to reconcile.
        """
        self.watches.append((handler, mapper))

    def process(self, key: Key) -> float | None:
        """Reconcile one key, turning failures into a retry delay."""
        try:
            return self.reconcile(*key)
        except Exception as e:
            return error_policy(self.kind, key, e, self.error_backoff)

    def run_once(self) -> None:
        """Reconcile every currently listed object once."""
        for resource in self.handler.iter_resources():
            for key in self._own_key(resource):
                self.process(key)

    def worker(self) -> None:
        while True:
            key = self.queue.get()
            if key is None:
                return
            try:
                delay = self.process(key)
            finally:
                self.queue.done(key)
            if delay is not None:
                self.queue.add(key, delay)

    def watch(self, handler: KubernetesResource, mapper: Mapper, stop_event: threading.Event) -> None:
        """Stream the events of one kind into the queue until stopped.

        The watch resumes from the last seen resourceVersion and starts over,
        replaying every object, when that version has expired.
        """
        resource_version = None
        while not stop_event.is_set():
            func, kwargs = handler.watch_function()
            if resource_version:
                kwargs["resource_version"] = resource_version
            stream = watch.Watch()
            try:
                for event in stream.stream(func, timeout_seconds=WATCH_TIMEOUT, **kwargs):
                    if stop_event.is_set():
                        stream.stop()
                        break
                    resource = event["object"]
                    resource_version = handler.get_resource_version(resource) or resource_version
                    for key in mapper(resource):
                        logger.debug(f"{event['type']} {handler.RESOURCE_KIND} queues {self.kind} {key[0]}/{key[1]}")
                        self.queue.add(key)
            except ApiException as e:
                if e.status == 410:
                    logger.info(f"Watch of {handler.RESOURCE_KIND}s expired, listing again")
                    resource_version = None
                    continue
                logger.warning(f"Watch of {handler.RESOURCE_KIND}s failed: {e.status} {e.reason}")
                stop_event.wait(self.error_backoff)
            except Exception as e:
                logger.warning(f"Watch of {handler.RESOURCE_KIND}s interrupted: {e}")
                stop_event.wait(self.error_backoff)

    def start(self, stop_event: threading.Event) -> list[threading.Thread]:
        """Start the watch and worker threads.

        Returns:
            The worker threads, to be joined on shutdown.
        """
        for handler, mapper in self.watches:
            threading.Thread(
                target=self.watch,
                args=(handler, mapper, stop_event),
                name=f"watch-{self.kind.lower()}-{handler.RESOURCE_KIND.lower()}",
                daemon=True,
            ).start()

        workers = []
        for index in range(self.workers):
            thread = threading.Thread(target=self.worker, name=f"reconcile-{self.kind.lower()}-{index}", daemon=True)
            thread.start()
            workers.append(thread)
        return workers

    def stop(self) -> None:
        self.queue.shutdown()


class Scheduler:
    """Runs the reconcile loops of the operator.

    This class starts every loop, waits for the stop signal and lets in-flight
    reconciles finish before returning.
    """

    def __init__(self, loops: list[ReconcileLoop]):
        """Initialize the scheduler.

        Args:
            loops: The loops to run, one per watched kind.
        """
        self.loops = loops

    def reconcile(self) -> None:
        """Reconcile every object of every loop once, in loop order."""
        for loop in self.loops:
            logger.info(f"Reconciling all {loop.kind}s")
            loop.run_once()

    def run(self, stop_event: threading.Event) -> None:
        """Run all loops until ``stop_event`` is set."""
        logger.info(f"Starting reconcile loops for {', '.join(loop.kind for loop in self.loops)}")
        workers = []
        for loop in self.loops:
            workers.extend(loop.start(stop_event))

        stop_event.wait()
        logger.info("Stopping reconcile loops")
        for loop in self.loops:
            loop.stop()
        for thread in workers:
            thread.join()
        logger.info("Reconcile loops stopped")
