"""信号管理模块。

把 OS 信号转换为运行级别的中断请求：
- SIGINT / SIGTERM: 标记中断并唤醒等待者，由 Runner 终止所有进行中的命令

子进程运行在独立的会话/进程组中，终端的 Ctrl+C 只会到达本进程，
因此所有子进程的终止都经过 Runner 的统一清理流程。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Iterable
from typing import Any, Callable, Optional

__all__ = ["SignalManager", "DEFAULT_INTERRUPT_SIGNALS"]

logger = logging.getLogger(__name__)

DEFAULT_INTERRUPT_SIGNALS: tuple[int, ...] = (
    (signal.SIGINT,) if sys.platform == "win32" else (signal.SIGINT, signal.SIGTERM)
)


class SignalManager:
    """信号管理器。

    在一次运行期间安装信号处理器，运行结束后恢复原处理器。

    Example:
        ```python
        manager = SignalManager()
        await manager.start()
        try:
            await manager.wait_for_interrupt()
        finally:
            await manager.stop()
        ```

    Attributes:
        signals: 监听的信号列表（为空则只接受程序化中断）
    """

    def __init__(
        self,
        signals: Iterable[int] = DEFAULT_INTERRUPT_SIGNALS,
        on_interrupt: Optional[Callable[[int | None], None]] = None,
    ) -> None:
        """初始化信号管理器。

        Args:
            signals: 监听的信号
            on_interrupt: 收到中断时的回调，参数为信号编号（程序化中断为 None）
        """
        self.signals = tuple(signals)
        self._on_interrupt = on_interrupt

        # 内部状态
        self._interrupted: bool = False
        self._received_signal: int | None = None
        self._interrupt_event: Optional[asyncio.Event] = None
        self._original_handlers: dict[int, Any] = {}
        self._running: bool = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def is_interrupted(self) -> bool:
        """是否已收到中断。"""
        return self._interrupted

    @property
    def received_signal(self) -> int | None:
        """触发中断的信号（程序化中断为 None）。"""
        return self._received_signal

    async def start(self) -> None:
        """启动信号监听。

        必须在 asyncio 事件循环中调用。
        """
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._interrupt_event = asyncio.Event()
        if self._interrupted:
            self._interrupt_event.set()
        self._running = True

        for signum in self.signals:
            try:
                self._original_handlers[signum] = signal.getsignal(signum)
                if sys.platform != "win32":
                    self._loop.add_signal_handler(signum, self._handle_signal, signum)
                else:
                    signal.signal(
                        signum,
                        lambda sig, frame: self._loop.call_soon_threadsafe(self._handle_signal, sig),
                    )
            except (ValueError, RuntimeError, NotImplementedError) as e:
                # 非主线程无法安装信号处理器，只能使用程序化中断
                self._original_handlers.pop(signum, None)
                logger.debug(f"Cannot install handler for signal {signum}: {e}")

        if self._original_handlers:
            logger.debug(f"Signal handlers installed for {sorted(self._original_handlers)}")

    async def stop(self) -> None:
        """停止信号监听，恢复原处理器。"""
        if not self._running:
            return

        self._running = False

        for signum, original in self._original_handlers.items():
            try:
                if sys.platform != "win32" and self._loop:
                    self._loop.remove_signal_handler(signum)
                if original is not None:
                    signal.signal(signum, original)
            except (ValueError, RuntimeError) as e:
                logger.debug(f"Error restoring handler for signal {signum}: {e}")
        self._original_handlers.clear()

        logger.debug("Signal handlers removed")

    async def wait_for_interrupt(self) -> None:
        """等待中断。"""
        if self._interrupt_event is None:
            raise RuntimeError("SignalManager is not started")
        await self._interrupt_event.wait()

    def _handle_signal(self, signum: int | None) -> None:
        """处理信号或程序化中断。重复中断只记录日志。"""
        if self._interrupted:
            logger.debug(f"Interrupt already requested, ignoring signal {signum}")
            return

        self._interrupted = True
        self._received_signal = signum
        if signum is None:
            logger.info("Programmatic interrupt requested")
        else:
            logger.info(f"{signal.Signals(signum).name} received, interrupting run")

        if self._on_interrupt:
            try:
                self._on_interrupt(signum)
            except Exception as e:
                logger.warning(f"Error in interrupt callback: {e}")

        if self._interrupt_event:
            self._interrupt_event.set()

    def request_interrupt(self) -> None:
        """程序化请求中断。

        可以从任意线程调用。
        """
        if self._loop is None or not self._running:
            logger.debug("Interrupt requested before start, recording only")
            self._handle_signal(None)
            return
        self._loop.call_soon_threadsafe(self._handle_signal, None)
