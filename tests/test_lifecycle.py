"""Tests for rendering-environment ownership and teardown."""

import pytest

from conftest import EnvironmentFactory
from markdown_mermaid_pdf.errors import RenderEnvironmentError
from markdown_mermaid_pdf.lifecycle import EnvironmentLifecycle, live_environment_count
from markdown_mermaid_pdf.logger import ConsoleLogger


class RecordingLogger(ConsoleLogger):
    def __init__(self):
        super().__init__(enabled=False)
        self.warnings = []

    def warning(self, message, **context):
        self.warnings.append(message)


@pytest.mark.asyncio
async def test_environment_is_closed_once_on_success(environment_factory, quiet_logger):
    before = live_environment_count()
    async with EnvironmentLifecycle(environment_factory, quiet_logger) as environment:
        assert live_environment_count() == before + 1
        await environment.start()

    assert environment_factory.last.close_calls == 1
    assert live_environment_count() == before


@pytest.mark.asyncio
async def test_environment_is_closed_when_the_body_raises(environment_factory, quiet_logger):
    before = live_environment_count()
    with pytest.raises(ValueError, match="boom"):
        async with EnvironmentLifecycle(environment_factory, quiet_logger):
            raise ValueError("boom")

    assert environment_factory.last.close_calls == 1
    assert live_environment_count() == before


@pytest.mark.asyncio
async def test_teardown_failure_is_logged_not_raised():
    logger = RecordingLogger()
    factory = EnvironmentFactory(fail_on="close")
    before = live_environment_count()

    async with EnvironmentLifecycle(factory, logger):
        pass

    assert factory.last.close_calls == 1
    assert logger.warnings == ["Error closing rendering environment: Browser has been closed"]
    assert live_environment_count() == before


@pytest.mark.asyncio
async def test_teardown_failure_does_not_mask_the_original_error():
    factory = EnvironmentFactory(fail_on="close")

    with pytest.raises(KeyError):
        async with EnvironmentLifecycle(factory, RecordingLogger()):
            raise KeyError("original")


@pytest.mark.asyncio
async def test_teardown_runs_only_once(environment_factory, quiet_logger):
    lifecycle = EnvironmentLifecycle(environment_factory, quiet_logger)
    async with lifecycle:
        pass
    await lifecycle.teardown()

    assert environment_factory.last.close_calls == 1


@pytest.mark.asyncio
async def test_factory_failure(quiet_logger):
    def broken_factory():
        raise OSError("no display")

    before = live_environment_count()
    with pytest.raises(RenderEnvironmentError, match="no display"):
        async with EnvironmentLifecycle(broken_factory, quiet_logger):
            pass
    assert live_environment_count() == before
