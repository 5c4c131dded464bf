import asyncio
import contextlib
from datetime import datetime, timezone
from typing import Awaitable, Callable

from shared.helper.HelperConfig import HelperConfig


class PeriodicTask:
    """Runs a coroutine every interval_seconds on an owned asyncio task.

    start() is idempotent. stop() sets the stop event, gives a running tick
    stop_grace_seconds to finish and then cancels it. A failing tick is logged
    and the loop keeps going.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        name: str,
        interval_seconds: float,
        action: Callable[[], Awaitable[object]],
        run_immediately: bool = False,
        stop_grace_seconds: float = 5.0,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.stop_grace_seconds = float(stop_grace_seconds)
        self._action = action
        self._run_immediately = run_immediately
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.runs = 0
        self.failures = 0
        self.last_run_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.interval_seconds > 0,
            "is_running": self.is_running,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }

    def start(self) -> None:
        if self.is_running:
            return
        if self.interval_seconds <= 0:
            self.logging.info("Periodic task '%s' disabled (interval %s).", self.name, self.interval_seconds)
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name=f"periodic-{self.name}")
        self.logging.info("Periodic task '%s' started (every %ss).", self.name, self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        task = self._task
        self._stop_event.set()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.stop_grace_seconds)
        except asyncio.TimeoutError:
            self.logging.warning(
                "Periodic task '%s' still busy after %ss, cancelling it.", self.name, self.stop_grace_seconds
            )
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        finally:
            self._task = None
        self.logging.info("Periodic task '%s' stopped.", self.name)

    async def run_once(self) -> bool:
        """Run the action once.

        Returns:
            bool: False if the action raised (the error is logged).
        """
        self.runs += 1
        self.last_run_at = datetime.now(timezone.utc)
        try:
            await self._action()
            return True
        except Exception as exc:
            self.failures += 1
            self.logging.error("Periodic task '%s' failed: %s", self.name, exc)
            return False

    async def _loop(self) -> None:
        if self._run_immediately:
            await self.run_once()
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                await self.run_once()
