"""
Per-patient critical sections.

Writes to one patient are serialized; different patients never wait on each
other. Waiting is bounded and a timeout surfaces as UpstreamUnavailable.
A patient's lock lives only while someone holds or waits for it.
"""

import logging
from contextlib import contextmanager
from threading import Lock, RLock

from patientflow.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


class PatientLocks:

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        # patient id → [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}
        self._registry_lock = Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, key: str) -> RLock:
        with self._registry_lock:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [RLock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, patient_id: str):
        key = str(patient_id)
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self.timeout):
                logger.warning("Timed out waiting for patient %s lock after %ss", patient_id, self.timeout)
                raise UpstreamUnavailable(
                    message=f"Patient {patient_id} is busy, try again",
                    code='PATIENT_BUSY',
                    detail={'patient_id': key},
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)
