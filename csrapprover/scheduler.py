import logging
import threading
from typing import Dict, List

from csrapprover.errors import ClusterError

logger = logging.getLogger(__name__)


class DeletionScheduler:
    """
    Deletes decided requests after a delay, arming at most one timer per request name.

    The name set is only touched under the lock and only for the membership
    check; the delete call itself runs unlocked on the timer thread.
    """

    def __init__(self, client, delay: float = 60.0):
        self.client = client
        self.delay = delay
        self._lock = threading.Lock()
        self._timers: Dict[str, threading.Timer] = {}

    def schedule(self, name: str) -> bool:
        """
        Arm a deletion timer for name. Returns False if one is already outstanding.
        """
        with self._lock:
            if name in self._timers:
                return False
            timer = threading.Timer(self.delay, self._delete, args=(name,))
            timer.daemon = True
            self._timers[name] = timer
            timer.start()
        logger.debug("Scheduled deletion of %s in %ss", name, self.delay)
        return True

    def _delete(self, name: str):
        try:
            self.client.delete_signing_request(name)
            logger.info("Deleted request %s", name)
        except ClusterError as e:
            logger.error("Failed to delete request %s: %s", name, e)
        finally:
            with self._lock:
                self._timers.pop(name, None)

    def pending(self) -> List[str]:
        with self._lock:
            return sorted(self._timers)

    def cancel_all(self):
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
