"""
Tests for bounded, timed stage execution.
"""

import asyncio

import pytest

from core.parallel_executor import StageExecutor, StageTask, TaskStatus
from error_handler import ComponentTimeoutError


@pytest.fixture
def executor():
    return StageExecutor(max_concurrent=2, default_timeout=1.0)


async def test_run_stage_returns_result(executor):
    async def operation():
        return 'classified'

    assert await executor.run_stage('query_classification', operation) == 'classified'
    assert executor.get_stats()['completed'] == 1


async def test_run_stage_timeout(executor):
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(ComponentTimeoutError) as info:
        await executor.run_stage('context_retrieval', slow, timeout_seconds=0.01)

    assert info.value.component == 'context_retrieval'
    stats = executor.get_stats()
    assert stats['timed_out'] == 1
    assert stats['failed'] == 1


async def test_run_stage_propagates_errors(executor):
    async def broken():
        raise KeyError('intent')

    with pytest.raises(KeyError):
        await executor.run_stage('deep_analysis', broken)
    assert executor.get_stats()['failed'] == 1


async def test_concurrency_is_bounded(executor):
    running = []
    peak = []

    async def stage():
        running.append(1)
        peak.append(len(running))
        await asyncio.sleep(0.01)
        running.pop()

    await asyncio.gather(*(executor.run_stage(f"s{i}", stage) for i in range(5)))
    assert max(peak) == 2


async def test_early_return_cancels_other_stages(executor):
    async def pattern():
        return 'pure_greeting'

    async def classification():
        await asyncio.sleep(1)
        return 'classified'

    stages = await executor.run_stages([
        StageTask('pattern_matching', pattern, early_return=True),
        StageTask('query_classification', classification),
    ])

    assert stages['pattern_matching'].status == TaskStatus.COMPLETED
    assert stages['query_classification'].status == TaskStatus.CANCELLED
    assert executor.get_stats()['early_returns'] == 1


async def test_falsy_early_result_waits_for_all(executor):
    async def no_match():
        return None

    async def classification():
        await asyncio.sleep(0.01)
        return 'classified'

    stages = await executor.run_stages([
        StageTask('pattern_matching', no_match, early_return=True),
        StageTask('query_classification', classification),
    ])

    assert stages['query_classification'].result == 'classified'
    assert executor.get_stats()['early_returns'] == 0


async def test_failed_stage_is_recorded_not_raised(executor):
    async def broken():
        raise RuntimeError("classifier crashed")

    stages = await executor.run_stages([StageTask('query_classification', broken)])

    assert stages['query_classification'].status == TaskStatus.FAILED
    assert isinstance(stages['query_classification'].error, RuntimeError)
