import logging
import threading
import time

from .errors import Chip8Error

logger = logging.getLogger(__name__)

DEFAULT_IPS = 700
TIMER_HZ = 60
MAX_BATCH = 64      # upper bound of instructions run between two sleeps


class Scheduler:
    """
    drive a machine with two independently paced threads:
    one steps the CPU at `ips` instructions per second, the other ticks the timers at `timer_hz`

    a fault raised by the CPU stops the CPU thread only, the fault is kept in `error`
    """
    def __init__(self, machine, ips=DEFAULT_IPS, timer_hz=TIMER_HZ):
        if ips <= 0 or timer_hz <= 0:
            raise ValueError("Both the instruction rate and the timer rate must be positive")
        self.machine = machine
        self.ips = ips
        self.timer_hz = timer_hz
        self.error = None
        self.cpu_done = threading.Event()
        self._stop = threading.Event()
        self._threads = []

    @property
    def running(self):
        return any(t.is_alive() for t in self._threads)

    def start(self):
        if self.running:
            raise RuntimeError("The scheduler is already running")
        self.error = None
        self.cpu_done.clear()
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._cpu_loop, name="chip8-cpu", daemon=True),
            threading.Thread(target=self._timer_loop, name="chip8-timers", daemon=True),
        ]
        for t in self._threads:
            t.start()
        logger.debug("Scheduler started: %d instructions/s, timers at %dHz", self.ips, self.timer_hz)

    def stop(self, timeout=1.0):
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        logger.debug("Scheduler stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()

    def _cpu_loop(self):
        interval = 1.0 / self.ips
        started = time.perf_counter()
        executed = 0
        try:
            while not self._stop.is_set():
                # run every instruction that is due by now, then sleep until the next one
                due = int((time.perf_counter() - started) * self.ips) - executed
                for _ in range(min(max(due, 0), MAX_BATCH)):
                    self.machine.step()
                    executed += 1
                if due > MAX_BATCH:
                    # too far behind, drop the backlog instead of bursting
                    executed += due - MAX_BATCH
                self._stop.wait(interval)
        except Chip8Error as exc:
            self.error = exc
            logger.error("The CPU stopped: %s", exc)
        finally:
            self.cpu_done.set()

    def _timer_loop(self):
        interval = 1.0 / self.timer_hz
        deadline = time.perf_counter() + interval
        while not self._stop.wait(max(deadline - time.perf_counter(), 0)):
            self.machine.tick_timers()
            deadline += interval
