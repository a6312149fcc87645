"""
Bounded retry and bounded polling.

Backoff:        ATTEMPTING → WAITING → RETRYING → ... → DONE | EXHAUSTED
PollingWindow:  ATTEMPTING → WAITING → ATTEMPTING → ... → TIMED_OUT

Both take the sleep function (and PollingWindow the clock) as parameters
so callers and tests control time.
"""
import asyncio
import logging
import time
from enum import Enum

logger = logging.getLogger("ray_retry")


class Phase(Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    RETRYING = "retrying"
    DONE = "done"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"


class RetriesExhausted(Exception):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class Backoff:
    """
    One attempt plus up to max_retries retries. The delay starts at
    initial_delay and is multiplied after every wait.
    """

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 2.0,
        multiplier: float = 2.0,
        retry_on: tuple = (Exception,),
        sleep=asyncio.sleep,
    ):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.retry_on = retry_on
        self._sleep = sleep
        self.phase = Phase.IDLE
        self.attempts = 0

    async def run(self, operation, before_attempt=None):
        """
        Await operation() until it succeeds. before_attempt() is awaited
        ahead of every attempt (first one included).
        """
        self.phase = Phase.ATTEMPTING
        self.attempts = 0
        delay = self.initial_delay

        while True:
            if before_attempt is not None:
                await before_attempt()
            self.attempts += 1
            try:
                result = await operation()
            except self.retry_on as e:
                if self.attempts > self.max_retries:
                    self.phase = Phase.EXHAUSTED
                    raise RetriesExhausted(self.attempts, e) from e
                logger.debug(
                    f"Attempt {self.attempts} failed ({e}), retrying in {delay:g}s"
                )
                self.phase = Phase.WAITING
                await self._sleep(delay)
                delay *= self.multiplier
                self.phase = Phase.RETRYING
                continue
            self.phase = Phase.DONE
            return result


class PollingWindow:
    """
    Fixed-interval polling bounded by a timeout measured from the first
    poll. Iterate with `async for attempt in window:`; the loop ends once
    the timeout has elapsed and `timed_out` becomes True.
    """

    def __init__(
        self,
        interval: float,
        timeout: float,
        sleep=asyncio.sleep,
        clock=time.monotonic,
    ):
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock
        self.phase = Phase.IDLE
        self.polls = 0

    @property
    def timed_out(self) -> bool:
        return self.phase is Phase.TIMED_OUT

    async def __aiter__(self):
        started = self._clock()
        while self._clock() - started <= self.timeout:
            self.phase = Phase.ATTEMPTING
            self.polls += 1
            yield self.polls
            self.phase = Phase.WAITING
            await self._sleep(self.interval)
        self.phase = Phase.TIMED_OUT
