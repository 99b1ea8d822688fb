"""
healthsync/utils/time_utils.py

Purpose: Time helpers

- Age from a birth date
- Cancellable one-second countdown used for the passcode resend cooldown
"""

import asyncio
from datetime import date
from typing import Awaitable, Callable, Optional


def parse_iso_date(value: str) -> Optional[date]:
    """
    Parses YYYY-MM-DD, returning None for anything else.
    """
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def age_on(birth_date: date, today: date) -> int:
    """
    Whole years between birth_date and today, counting the birthday itself.
    """
    age = today.year - birth_date.year
    if (today.month, today.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


class CountdownTimer:
    """
    Counts down whole seconds on the running event loop.

    The countdown is a single asyncio task; `cancel()` tears it down and
    leaves `remaining` at zero. `sleep` is injectable so tests can run
    simulated seconds.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.remaining = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, seconds: int):
        """Restarts the countdown from `seconds`."""
        self.cancel()
        self.remaining = max(seconds, 0)
        if self.remaining:
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self):
        while self.remaining > 0:
            await self._sleep(1)
            self.remaining -= 1

    def cancel(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.remaining = 0
