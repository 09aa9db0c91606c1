"""
Status Polling Service

⏳ Waits for a server-side record to become ready:
Reloads the record on a fixed interval until ``is_ready(value)`` holds or the
timeout runs out. Each reload is written into ``value``. Running out
of time leaves ``is_ready`` False; there is no separate timeout error.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..errors import describe_error
from ..services.container import ServiceFactoryContext, define_service, implement_service
from ..utils.polling import poll

logger = logging.getLogger(__name__)


@dataclass
class StatusPollingConfig:
    """Configuration for a StatusPollingService"""
    loader: Callable[[], Awaitable[Any]]
    is_ready: Callable[[Any], bool]
    initial_value: Any = None
    interval: Optional[float] = None
    timeout: Optional[float] = None
    auto_start: bool = True


StatusPollingServiceDefinition = define_service(
    "status-polling",
    "Polls a loader until the loaded value is ready",
)


class StatusPollingService:
    """
    Signals: value, is_polling, error. Computed: is_ready.
    """

    def __init__(self, ctx: ServiceFactoryContext):
        config: StatusPollingConfig = ctx.config
        defaults = ctx.app_config.polling

        self._loader = config.loader
        self._ready = config.is_ready
        self.interval = config.interval if config.interval is not None else defaults.interval
        self.timeout = config.timeout if config.timeout is not None else defaults.timeout

        signals = ctx.signals
        self.value = signals.signal(config.initial_value, name="value")
        self.is_polling = signals.signal(False, name="is_polling")
        self.error = signals.signal(None, name="error")
        self.is_ready = signals.computed(lambda: self._check(self.value.get()), name="is_ready")

        self._task: Optional[asyncio.Task] = None
        self._disposed = False

        if config.auto_start and config.initial_value is not None:
            self.start()

    def start(self) -> Optional[asyncio.Task]:
        """Poll in the background unless already ready or polling"""
        if self._task is not None and not self._task.done():
            return self._task
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; call poll_until_ready() to start polling")
            return None
        self._task = loop.create_task(self.poll_until_ready())
        return self._task

    async def poll_until_ready(self) -> bool:
        if self.is_ready.peek():
            return True

        self.is_polling.set(True)
        self.error.set(None)
        try:
            return await poll(self._reload, interval=self.interval, timeout=self.timeout)
        except Exception as e:
            logger.error(f"Error polling status: {e}")
            if not self._disposed:
                self.error.set(describe_error(e, "Failed to refresh status"))
            return False
        finally:
            if not self._disposed:
                self.is_polling.set(False)

    async def _reload(self) -> bool:
        value = await self._loader()
        if self._disposed:
            return True
        self.value.set(value)
        return self._check(value)

    def _check(self, value: Any) -> bool:
        return value is not None and bool(self._ready(value))

    def dispose(self):
        self._disposed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


StatusPollingServiceImplementation = implement_service(StatusPollingServiceDefinition, StatusPollingService)


__all__ = [
    "StatusPollingConfig", "StatusPollingService",
    "StatusPollingServiceDefinition", "StatusPollingServiceImplementation",
]
