"""
=============================================================================
SHUTDOWN ESCALATION
=============================================================================

On shutdown every worker still in the registry is asked to stop, then
told to stop:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  round   action per live worker                  retry counter       │
    ├─────────────────────────────────────────────────────────────────────┤
    │    1     SIGTERM                                  0 → 1              │
    │    2     still alive? SIGTERM                     1 → 2              │
    │   ...                                                                │
    │    5     still alive? SIGTERM                     4 → 5              │
    │    6     still alive? SIGKILL, stop tracking      5                  │
    └─────────────────────────────────────────────────────────────────────┘

A worker that exits at any point is simply dropped. SIGKILL cannot be
caught, so after round max_retries + 1 the registry is empty and
shutdown is guaranteed to finish in bounded time:

    worst case ≈ (max_retries + 1) × retry_interval

=============================================================================
TESTABILITY
=============================================================================

The three side effects (sending a signal, probing liveness, sleeping)
are injected. Production wires them to os.kill, Reaper.is_alive and
time.sleep; tests pass fakes and can drive a "worker" that ignores
SIGTERM without ever forking.

=============================================================================
"""

import os
import signal
import time
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List


logger = logging.getLogger(__name__)


@dataclass
class EscalationReport:
    """What happened to each worker during shutdown."""

    terminated: List[int] = field(default_factory=list)
    killed: List[int] = field(default_factory=list)
    rounds: int = 0


class ShutdownEscalation:
    """
    Bounded graceful-then-forced termination of workers.

    Usage:
        escalation = ShutdownEscalation(is_alive=reaper.is_alive)
        report = escalation.run(registry)   # registry is empty afterwards
    """

    def __init__(
        self,
        is_alive: Callable[[int], bool],
        send_signal: Callable[[int, int], None] = os.kill,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = 5,
        interval: float = 0.2,
    ):
        self.is_alive = is_alive
        self.send_signal = send_signal
        self.sleep = sleep
        self.max_retries = max_retries
        self.interval = interval

    def _signal(self, pid: int, sig: int) -> bool:
        """Deliver ``sig``. Returns False if the process is already gone."""
        try:
            self.send_signal(pid, sig)
            return True
        except ProcessLookupError:
            return False

    def run(self, registry: Dict[int, int]) -> EscalationReport:
        """
        Drive every worker in ``registry`` to termination.

        Args:
            registry: pid → retry counter. Emptied in place.
        """
        report = EscalationReport()

        while registry:
            report.rounds += 1

            for pid in list(registry):
                if not self.is_alive(pid):
                    del registry[pid]
                    report.terminated.append(pid)
                    continue

                if registry[pid] >= self.max_retries:
                    logger.warning(f"Worker {pid} ignored {registry[pid]} SIGTERMs, sending SIGKILL")
                    self._signal(pid, signal.SIGKILL)
                    # Best-effort collect; init adopts anything left once we exit.
                    self.is_alive(pid)
                    del registry[pid]
                    report.killed.append(pid)
                    continue

                registry[pid] += 1
                logger.debug(f"Sending SIGTERM to worker {pid} (attempt {registry[pid]})")
                if not self._signal(pid, signal.SIGTERM):
                    del registry[pid]
                    report.terminated.append(pid)

            if registry:
                self.sleep(self.interval)

        logger.info(
            f"All workers stopped: {len(report.terminated)} terminated, "
            f"{len(report.killed)} killed"
        )
        return report
