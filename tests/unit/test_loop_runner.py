"""Tests for the sync bridge (rowclaim/core/utils/loop_runner.py)."""

from __future__ import annotations

import asyncio
import gc
import threading
import warnings
from unittest.mock import MagicMock, patch

import pytest

from rowclaim.core.utils.loop_runner import LoopRunner, LoopRunnerError


@pytest.mark.unit
class TestLoopRunnerCall:
    def test_call_runs_on_private_thread(self) -> None:
        runner = LoopRunner()

        async def thread_name(suffix: str) -> str:
            await asyncio.sleep(0)
            return threading.current_thread().name + suffix

        try:
            assert runner.call(thread_name, '!') == 'rowclaim-loop!'
            assert runner.is_running
        finally:
            runner.stop()
        assert not runner.is_running

    def test_call_propagates_coroutine_errors_unwrapped(self) -> None:
        runner = LoopRunner()

        async def fail() -> None:
            raise KeyError('inner')

        try:
            with pytest.raises(KeyError, match='inner'):
                runner.call(fail)
        finally:
            runner.stop()

    def test_scheduling_failure_closes_coroutine(self) -> None:
        runner = LoopRunner()
        runner.start()

        async def sample() -> int:
            return 1

        try:
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter('always', RuntimeWarning)
                with (
                    patch(
                        'asyncio.run_coroutine_threadsafe',
                        side_effect=RuntimeError('boom'),
                    ),
                    pytest.raises(LoopRunnerError, match='Could not schedule coroutine'),
                ):
                    runner.call(sample)
                gc.collect()

            assert not any('was never awaited' in str(w.message) for w in caught)
        finally:
            runner.stop()

    def test_stopped_runner_is_not_restarted(self) -> None:
        runner = LoopRunner()
        runner.start()
        runner.stop()

        async def sample() -> int:
            return 1

        with pytest.raises(LoopRunnerError, match='cannot be restarted'):
            runner.call(sample)
        assert runner._loop is None
        assert runner._thread is None

    def test_call_from_loop_thread_is_rejected(self) -> None:
        runner = LoopRunner()

        async def inner() -> int:
            return 1

        async def reentrant() -> None:
            runner.call(inner)

        try:
            with pytest.raises(LoopRunnerError, match='inside the loop runner thread'):
                runner.call(reentrant)
        finally:
            runner.stop()


@pytest.mark.unit
class TestLoopRunnerStop:
    def test_alive_thread_keeps_loop_open(self) -> None:
        runner = LoopRunner()
        runner._started = True
        runner._loop = MagicMock()
        runner._thread = MagicMock()
        runner._thread.is_alive.return_value = True

        with patch.object(runner.logger, 'warning') as mock_warn:
            runner.stop()

        runner._thread.join.assert_called_once_with(timeout=2)
        runner._loop.close.assert_not_called()
        assert runner._started is True
        mock_warn.assert_called_once()

    def test_stop_before_start_marks_closed(self) -> None:
        runner = LoopRunner()
        runner.stop()

        with pytest.raises(LoopRunnerError, match='cannot be restarted'):
            runner.start()

    def test_concurrent_ensure_loop_builds_one_loop(self) -> None:
        runner = LoopRunner()
        barrier = threading.Barrier(6)
        loops: list[object] = []
        lock = threading.Lock()

        def _worker() -> None:
            barrier.wait()
            loop = runner._ensure_loop()
            with lock:
                loops.append(loop)

        with patch('asyncio.new_event_loop', side_effect=lambda: MagicMock()) as new_loop:
            threads = [threading.Thread(target=_worker) for _ in range(6)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len({id(loop) for loop in loops}) == 1
        assert new_loop.call_count == 1
