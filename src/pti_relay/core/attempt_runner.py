"""编码尝试执行器。

每次尝试独占一个执行单元，超时只计算尝试实际运行的时间。
线程模式下超时的尝试被放弃；进程模式下超时的工作进程被终止，下次使用时重建。
"""

import multiprocessing
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from multiprocessing.connection import Connection
from typing import Protocol

from ..exceptions import ProcessingError
from ..models.preset import CompressionPreset
from ..utils.logging_helpers import get_logger
from .compression_engine import EncodeOutcome


logger = get_logger()

EncodeFunction = Callable[[bytes, CompressionPreset], EncodeOutcome]

_READY = "ready"


def _default_context():
    # 工作池线程中直接 fork 会继承其他线程持有的锁
    if "forkserver" in multiprocessing.get_all_start_methods():
        return multiprocessing.get_context("forkserver")
    return multiprocessing.get_context()


class AttemptRunner(Protocol):
    """限时执行单次编码尝试"""

    def run(
        self,
        encode_fn: EncodeFunction,
        data: bytes,
        preset: CompressionPreset,
        timeout: float,
    ) -> EncodeOutcome:
        """执行一次尝试，超时抛出 concurrent.futures.TimeoutError"""
        ...

    def close(self) -> None: ...


class ThreadAttemptRunner:
    """每次尝试启动一个守护线程

    线程无法强制终止，超时的尝试被放弃，结果丢弃；
    它不占用任何共享名额，其他照片的尝试不会因此排队。
    """

    def run(
        self,
        encode_fn: EncodeFunction,
        data: bytes,
        preset: CompressionPreset,
        timeout: float,
    ) -> EncodeOutcome:
        future: Future = Future()

        def target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(encode_fn(data, preset))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=target, name="pti-encode", daemon=True).start()
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            raise

    def close(self) -> None:
        pass


def _worker_main(conn: Connection) -> None:
    """编码进程主循环：逐个执行任务，收到 None 或管道关闭时退出"""
    conn.send(_READY)
    while True:
        try:
            task = conn.recv()
        except EOFError:
            return
        if task is None:
            return

        encode_fn, data, preset = task
        try:
            reply = (True, encode_fn(data, preset))
        except Exception as e:
            reply = (False, e)

        try:
            conn.send(reply)
        except Exception as e:
            # 异常对象无法序列化时改为回传通用错误
            conn.send((False, ProcessingError(f"编码结果无法回传: {e}")))


class _EncodeWorker:
    """可终止的编码进程，由 ProcessAttemptRunner 独占分配"""

    def __init__(self, context):
        self._context = context
        self._process = None
        self._conn: Connection | None = None

    def run(
        self,
        encode_fn: EncodeFunction,
        data: bytes,
        preset: CompressionPreset,
        timeout: float,
    ) -> EncodeOutcome:
        conn = self._ensure_started()
        try:
            conn.send((encode_fn, data, preset))
        except OSError as e:
            self.terminate()
            raise ProcessingError(f"编码进程不可用: {e}") from e

        if not conn.poll(timeout):
            logger.debug(f"编码进程 {self._process.pid} 超时，终止")
            self.terminate()
            raise FuturesTimeoutError()

        try:
            ok, value = conn.recv()
        except EOFError as e:
            self.terminate()
            raise ProcessingError("编码进程异常退出") from e

        if ok:
            return value
        raise value

    def _ensure_started(self) -> Connection:
        if self._process is not None and self._process.is_alive():
            return self._conn

        self.terminate()
        parent_conn, child_conn = self._context.Pipe()
        process = self._context.Process(
            target=_worker_main, args=(child_conn,), name="pti-encode", daemon=True
        )
        process.start()
        child_conn.close()

        # 启动耗时不计入尝试超时
        try:
            parent_conn.recv()
        except EOFError as e:
            process.join()
            parent_conn.close()
            raise ProcessingError("编码进程启动失败") from e

        self._process, self._conn = process, parent_conn
        return parent_conn

    def terminate(self) -> None:
        if self._process is None:
            return
        if self._process.is_alive():
            self._process.terminate()
        self._process.join()
        self._conn.close()
        self._process = None
        self._conn = None


class ProcessAttemptRunner:
    """固定数量的可终止编码进程

    进程数与工作池大小一致，每个尝试独占一个进程；
    超时的进程被终止，名额立即归还。encode_fn 必须可序列化。
    """

    def __init__(self, max_workers: int, context=None):
        if max_workers <= 0:
            raise ValueError(f"max_workers 必须大于 0，当前值: {max_workers}")

        context = context or _default_context()
        self._workers = [_EncodeWorker(context) for _ in range(max_workers)]
        self._idle: queue.SimpleQueue[_EncodeWorker] = queue.SimpleQueue()
        for worker in self._workers:
            self._idle.put(worker)

    def run(
        self,
        encode_fn: EncodeFunction,
        data: bytes,
        preset: CompressionPreset,
        timeout: float,
    ) -> EncodeOutcome:
        worker = self._idle.get()
        try:
            return worker.run(encode_fn, data, preset, timeout)
        finally:
            self._idle.put(worker)

    def close(self) -> None:
        """终止全部编码进程"""
        for worker in self._workers:
            worker.terminate()
