"""
Parallel Stage Execution

Runs pipeline stages under a bounded pool with a per-stage timeout, and
coordinates groups of stages that may return early.

Features:
- Bounded concurrency (asyncio.Semaphore)
- Per-stage timeout (a timed-out stage is a failed stage)
- Early return: a successful `early_return` stage cancels outstanding stages
- Error isolation (one failure doesn't stop independent stages)
- Performance tracking
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Callable, Awaitable
from enum import Enum

from error_handler import ComponentTimeoutError


class TaskStatus(Enum):
    """Status of a stage in one execution"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class StageTask:
    """A single pipeline stage"""
    name: str
    operation: Callable[[], Awaitable[Any]]
    early_return: bool = False

    # Execution state
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    error: Optional[BaseException] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def elapsed_ms(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time) * 1000
        return 0.0


class StageExecutor:
    """
    Bounded-concurrency executor for pipeline stages.

    The semaphore is shared by every call on the same executor, so the bound
    holds across concurrent queries as well as within one.
    """

    def __init__(self, max_concurrent: int = 3, default_timeout: float = 5.0, verbose: bool = False):
        self.max_concurrent = max_concurrent
        self.default_timeout = default_timeout
        self.verbose = verbose
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop = None
        self.execution_stats = {
            'total_stages': 0,
            'completed': 0,
            'failed': 0,
            'timed_out': 0,
            'cancelled': 0,
            'early_returns': 0,
            'total_time_ms': 0.0,
        }

    def _get_semaphore(self) -> asyncio.Semaphore:
        # One semaphore per running loop; sync callers start a fresh loop per call
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
            self._semaphore_loop = loop
        return self._semaphore

    async def run_stage(self, name: str, operation: Callable[[], Awaitable[Any]],
                        timeout_seconds: Optional[float] = None) -> Any:
        """
        Run one stage under the pool and its timeout.

        Raises:
            ComponentTimeoutError: the stage exceeded its timeout
            Exception: whatever the stage raised
        """
        timeout = timeout_seconds if timeout_seconds is not None else self.default_timeout
        self.execution_stats['total_stages'] += 1
        start = time.time()

        async with self._get_semaphore():
            try:
                result = await asyncio.wait_for(operation(), timeout=timeout)
            except asyncio.TimeoutError:
                self.execution_stats['timed_out'] += 1
                self.execution_stats['failed'] += 1
                raise ComponentTimeoutError(name, timeout)
            except Exception:
                self.execution_stats['failed'] += 1
                raise
            finally:
                self.execution_stats['total_time_ms'] += (time.time() - start) * 1000

        self.execution_stats['completed'] += 1
        if self.verbose:
            print(f"[STAGE] {name}: {(time.time() - start) * 1000:.1f}ms")
        return result

    async def run_stages(self, stages: List[StageTask]) -> Dict[str, StageTask]:
        """
        Run stage coroutines concurrently and collect their outcome.

        Stages are coordinators, not leaves: they are expected to call
        `run_stage` for the guarded work themselves, so no pool slot is held
        here. Stage failures are recorded on the StageTask rather than raised.
        """
        async def execute_single(stage: StageTask) -> StageTask:
            stage.status = TaskStatus.RUNNING
            stage.start_time = time.time()
            try:
                stage.result = await stage.operation()
                stage.status = TaskStatus.COMPLETED
            except Exception as e:
                stage.error = e
                stage.status = TaskStatus.FAILED
            finally:
                stage.end_time = time.time()
            if self.verbose:
                print(f"[STAGE] {stage.name} {stage.status.value} in {stage.elapsed_ms():.1f}ms")
            return stage

        pending = {asyncio.ensure_future(execute_single(stage)): stage for stage in stages}

        while pending:
            done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)
            for future in done:
                stage = pending.pop(future)
                if stage.early_return and stage.status == TaskStatus.COMPLETED and stage.result:
                    self.execution_stats['early_returns'] += 1
                    await self._cancel(pending)
                    pending = {}
                    break

        return {stage.name: stage for stage in stages}

    async def _cancel(self, pending: Dict["asyncio.Future", StageTask]):
        for future, stage in pending.items():
            future.cancel()
            stage.status = TaskStatus.CANCELLED
            self.execution_stats['cancelled'] += 1
        await asyncio.gather(*pending.keys(), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get execution statistics"""
        return self.execution_stats.copy()
