import enum
import logging
import threading
import time
from dataclasses import replace
from typing import List, Optional, Tuple

from csrapprover.config import retry_limit
from csrapprover.errors import ClusterError, ConflictError
from csrapprover.inspectors.base import ChainEntry, InspectorChain
from csrapprover.kubernetes import (
    CONDITION_APPROVED,
    CONDITION_DENIED,
    Condition,
    SigningRequest,
    now_timestamp,
)
from csrapprover.metrics import Metrics
from csrapprover.scheduler import DeletionScheduler

logger = logging.getLogger(__name__)

APPROVED_REASON = "AutoApproved"
APPROVED_MESSAGE = "Approved by csr-approver"

WATCHED_EVENTS = ("ADDED", "MODIFIED")


class Decision(enum.Enum):
    ALREADY_DECIDED = "AlreadyDecided"
    FILTERED = "Filtered"
    DENIED = "Denied"
    APPROVED = "Approved"


class Approver:
    """
    Runs the filter, denier and warner chains over pending CertificateSigningRequests
    and records the outcome as a status condition.

    Filters decide whether a request is handled at all: the first objection
    skips it without writing anything. The first denier to object denies the
    request with its own name as the reason. Otherwise the request is approved,
    and every warner gets to log an objection without changing that.
    """

    def __init__(
        self,
        client,
        filters: InspectorChain,
        deniers: InspectorChain,
        warners: InspectorChain,
        scheduler: DeletionScheduler,
        metrics: Metrics = None,
        max_conflict_retries: Optional[int] = 10,
        retry_backoff: float = 0.5,
    ):
        self.client = client
        self.filters = filters
        self.deniers = deniers
        self.warners = warners
        self.scheduler = scheduler
        self.metrics = metrics or Metrics()
        self.max_conflict_retries = retry_limit(max_conflict_retries)
        self.retry_backoff = retry_backoff
        self._stop = threading.Event()

    def handle(self, request: SigningRequest) -> Decision:
        """
        Decide a single request.

        Raises ClusterError if an inspector or the cluster fails; the request is
        then left pending for the next resync.
        """
        conflicts = 0
        while True:
            # Approved and Denied are the only conditions, so any condition
            # means somebody already decided.
            if request.is_decided:
                self.scheduler.schedule(request.name)
                return Decision.ALREADY_DECIDED

            for entry in self.filters:
                message = self._inspect(entry, request)
                if message:
                    logger.info(
                        "Skipping %s from %s: %s", request.name, request.username, message
                    )
                    self.metrics.filtered.labels(entry.name).inc()
                    return Decision.FILTERED

            condition = Condition(
                type=CONDITION_APPROVED,
                reason=APPROVED_REASON,
                message=APPROVED_MESSAGE,
                last_update_time=now_timestamp(),
            )
            for entry in self.deniers:
                message = self._inspect(entry, request)
                if message:
                    condition.type = CONDITION_DENIED
                    condition.reason = entry.name
                    condition.message = message
                    break

            warnings = []
            if condition.type == CONDITION_APPROVED:
                warnings = self._warnings(request)

            decided = replace(request, conditions=request.conditions + [condition])
            try:
                self.client.update_approval(decided)
            except ConflictError as e:
                # Modified by a third party since we read it, start over from
                # the current version.
                conflicts += 1
                if self.max_conflict_retries is not None and conflicts > self.max_conflict_retries:
                    self.metrics.error.labels("updateApproval").inc()
                    raise ClusterError(
                        f"giving up after {conflicts} conflicting updates: {e}"
                    ) from e
                logger.info(
                    "Request %s was modified concurrently, retrying (%d)", request.name, conflicts
                )
                if self.retry_backoff:
                    time.sleep(self.retry_backoff * conflicts)
                try:
                    request = self.client.get_signing_request(request.name)
                except ClusterError:
                    self.metrics.error.labels("getRequest").inc()
                    raise
                continue
            except ClusterError:
                self.metrics.error.labels("updateApproval").inc()
                raise

            self._record(request, condition, warnings)
            self.scheduler.schedule(request.name)
            if condition.type == CONDITION_DENIED:
                return Decision.DENIED
            return Decision.APPROVED

    def _inspect(self, entry: ChainEntry, request: SigningRequest) -> str:
        try:
            return entry.inspector.inspect(self.client, request)
        except ClusterError:
            self.metrics.error.labels(entry.name).inc()
            raise

    def _warnings(self, request: SigningRequest) -> List[Tuple[str, str]]:
        warnings = []
        for entry in self.warners:
            try:
                message = entry.inspector.inspect(self.client, request)
            except ClusterError as e:
                logger.debug("Warner %s failed on %s: %s", entry.name, request.name, e)
                continue
            if message:
                warnings.append((entry.name, message))
        return warnings

    def _record(self, request: SigningRequest, condition: Condition, warnings):
        if condition.type == CONDITION_DENIED:
            logger.info(
                "Successfully Denied %s from %s by %s with %r",
                request.name,
                request.username,
                condition.reason,
                condition.message,
            )
            self.metrics.denied.labels(condition.reason).inc()
            return

        for name, message in warnings:
            logger.warning(
                "Approving CSR %s from %s despite %s: %s",
                request.name,
                request.username,
                name,
                message,
            )
            self.metrics.warned.labels(name).inc()
        logger.info("Successfully Approved %s from %s", request.name, request.username)
        self.metrics.approved.inc()

    def on_event(self, request: SigningRequest):
        try:
            self.handle(request)
        except ClusterError as e:
            logger.error("Failed to handle %s from %s: %s", request.name, request.username, e)
        except Exception:
            # One bad request must not stop the watch
            logger.exception("Unexpected error handling %s from %s", request.name, request.username)
            self.metrics.error.labels("handle").inc()

    def run(self, resync_period: int = 30, retry_delay: float = 5.0):
        """
        List and handle every request, then follow the watch until it times out
        after resync_period seconds, and start over. Returns once stop() is called.
        """
        while not self._stop.is_set():
            try:
                requests, resource_version = self.client.list_signing_requests()
                for request in requests:
                    if self._stop.is_set():
                        return
                    self.on_event(request)

                for event_type, request in self.client.watch_signing_requests(
                    since=resource_version, timeout=resync_period
                ):
                    if self._stop.is_set():
                        return
                    if event_type in WATCHED_EVENTS:
                        self.on_event(request)
            except ClusterError as e:
                logger.error("Watching certificate signing requests failed: %s", e)
                self._stop.wait(retry_delay)

    def stop(self):
        self._stop.set()
