"""
Background expiry sweeper.

Runs inside the API process as asyncio tasks started from the app lifespan.
Two sweeps run on independent schedules:

- temporary_passwords: unsets expired temporary password hash/expiry pairs
- reset_tokens:        unsets expired reset token hash/expiry pairs

Each sweep is a single update_many and is idempotent. A failing sweep is
logged and retried at its next interval; it never stops the other sweep.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from config import SweeperSettings
from repositories.user_repository import UserRepository
from shared.datetime_utils import utc_now
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass
class Sweep:
    name: str
    interval_seconds: float
    purge: Callable[[datetime], Awaitable[int]]
    last_run_at: Optional[datetime] = None
    last_purged: Optional[int] = None
    last_error: Optional[str] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def status(self) -> dict:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "running": self.task is not None and not self.task.done(),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_purged": self.last_purged,
            "last_error": self.last_error,
        }


class ExpirySweeper:
    def __init__(
        self,
        user_repo: UserRepository,
        settings: SweeperSettings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._initial_delay = settings.sweeper_initial_delay_seconds
        self._clock = clock
        self._sweeps = [
            Sweep(
                name="temporary_passwords",
                interval_seconds=settings.temporary_password_sweep_interval_seconds,
                purge=user_repo.purge_expired_temporary_passwords,
            ),
            Sweep(
                name="reset_tokens",
                interval_seconds=settings.reset_token_sweep_interval_seconds,
                purge=user_repo.purge_expired_reset_tokens,
            ),
        ]

    @property
    def running(self) -> bool:
        return any(s.task is not None and not s.task.done() for s in self._sweeps)

    async def start(self) -> None:
        if self.running:
            log.warning("expiry_sweeper_already_running")
            return
        for sweep in self._sweeps:
            sweep.task = asyncio.create_task(
                self._run_loop(sweep), name=f"expiry-sweep-{sweep.name}"
            )
        log.info(
            "expiry_sweeper_started",
            initial_delay=self._initial_delay,
            sweeps=[s.name for s in self._sweeps],
        )

    async def stop(self) -> None:
        for sweep in self._sweeps:
            if sweep.task is None:
                continue
            sweep.task.cancel()
            try:
                await sweep.task
            except asyncio.CancelledError:
                pass
            sweep.task = None
        log.info("expiry_sweeper_stopped")

    async def run_once(self) -> dict[str, Optional[int]]:
        """Run every sweep once. A failed sweep reports None instead of a count."""
        return {sweep.name: await self._sweep(sweep) for sweep in self._sweeps}

    def get_status(self) -> list[dict]:
        return [sweep.status() for sweep in self._sweeps]

    async def _sweep(self, sweep: Sweep) -> Optional[int]:
        now = self._clock()
        sweep.last_run_at = now
        try:
            purged = await sweep.purge(now)
        except Exception as exc:
            sweep.last_error = str(exc)
            log.error(
                "expiry_sweep_failed",
                sweep=sweep.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        sweep.last_purged = purged
        sweep.last_error = None
        log.info("expiry_sweep_completed", sweep=sweep.name, purged=purged)
        return purged

    async def _run_loop(self, sweep: Sweep) -> None:
        await asyncio.sleep(self._initial_delay)
        while True:
            await self._sweep(sweep)
            await asyncio.sleep(sweep.interval_seconds)
