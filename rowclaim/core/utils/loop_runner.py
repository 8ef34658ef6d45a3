# rowclaim/core/utils/loop_runner.py
from __future__ import annotations
import asyncio
import contextlib
import threading
from concurrent.futures import Future
from typing import Any, Awaitable, Callable
from rowclaim.core.logging import get_logger


class LoopRunnerError(RuntimeError):
    """The sync->async bridge itself failed (not the coroutine it ran)."""


class LoopRunner:
    """Owns a private event loop on a daemon thread so sync callers can await.

    Everything a sync facade touches (engine, sessions, open claims) lives on
    this one loop; a claim opened here must also be finalized here.
    """

    def __init__(self) -> None:
        self.logger = get_logger('loop_runner')
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._started = False
        self._closed = False
        self._state_lock = threading.RLock()

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._started and not self._closed

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._state_lock:
            if self._closed:
                raise LoopRunnerError('Loop runner is stopped and cannot be restarted')
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._thread = threading.Thread(
                    target=self._loop.run_forever, name='rowclaim-loop', daemon=True,
                )
            return self._loop

    def start(self) -> None:
        with self._state_lock:
            if self._started:
                return
            self._ensure_loop()
            assert self._thread is not None
            try:
                self._thread.start()
            except Exception as exc:
                self._loop = None
                self._thread = None
                raise LoopRunnerError(
                    f'Could not start loop thread: {type(exc).__name__}: {exc}',
                ) from exc
            self._started = True

    def stop(self) -> None:
        with self._state_lock:
            if self._started and self._loop is not None:
                self._loop.call_soon_threadsafe(self._loop.stop)
                if self._thread is not None:
                    self._thread.join(timeout=2)
                    if self._thread.is_alive():
                        self.logger.warning(
                            'Loop thread still alive after 2s; leaving its loop open'
                        )
                        return
                self._loop.close()
                self._loop = None
                self._thread = None
                self._started = False
            self._closed = True

    def call(
        self, coro_fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any
    ) -> Any:
        """Run ``coro_fn(*args, **kwargs)`` on the loop thread and wait for it."""
        if not self._started:
            self.start()
        with self._state_lock:
            loop = self._loop
            if self._closed or not self._started or loop is None:
                raise LoopRunnerError('Loop runner is not running')
        if threading.current_thread() is self._thread:
            # Blocking here would deadlock the loop we are waiting on.
            raise LoopRunnerError('call() used from inside the loop runner thread')

        self.logger.debug(f'Calling {coro_fn.__name__}')
        coro: Awaitable[Any] | None = None
        try:
            coro = coro_fn(*args, **kwargs)
            fut: Future[Any] = asyncio.run_coroutine_threadsafe(coro, loop)  # type: ignore[arg-type]
        except Exception as exc:
            # Close the coroutine so it does not warn about never being awaited.
            if asyncio.iscoroutine(coro):
                with contextlib.suppress(RuntimeError):
                    coro.close()
            raise LoopRunnerError(
                f'Could not schedule coroutine: {type(exc).__name__}: {exc}',
            ) from exc
        return fut.result()
