"""
Scoped ownership of a rendering environment.

One environment per conversion, torn down exactly once on every exit path.
Teardown failures are logged and never raised, so they cannot mask the
conversion's own outcome.
"""

import threading
from typing import Callable, Optional

from .environment import RenderEnvironment
from .errors import RenderEnvironmentError
from .logger import ConsoleLogger

_live_environments = 0
_live_lock = threading.Lock()


def _track(delta: int) -> None:
    global _live_environments
    with _live_lock:
        _live_environments += delta


def live_environment_count() -> int:
    """Number of environments created and not yet torn down in this process."""
    with _live_lock:
        return _live_environments


class EnvironmentLifecycle:
    """Async context manager around one ``RenderEnvironment``.

    Usage::

        async with EnvironmentLifecycle(factory, logger) as environment:
            ...
    """

    def __init__(self, factory: Callable[[], RenderEnvironment], logger: ConsoleLogger):
        self.factory = factory
        self.logger = logger
        self.environment: Optional[RenderEnvironment] = None
        self._torn_down = False

    async def __aenter__(self) -> RenderEnvironment:
        try:
            self.environment = self.factory()
        except Exception as e:
            raise RenderEnvironmentError(f"Failed to create the rendering environment: {e}") from e
        _track(1)
        return self.environment

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        await self.teardown()
        return False

    async def teardown(self) -> None:
        if self.environment is None or self._torn_down:
            return
        self._torn_down = True
        self.logger.debug("Cleaning up resources")
        try:
            await self.environment.close()
        except Exception as e:
            self.logger.warning(f"Error closing rendering environment: {e}")
        finally:
            _track(-1)
