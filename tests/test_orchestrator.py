"""Tests for the render state machine and per-diagram fault isolation."""

import pytest

from conftest import FAILURE_TOKEN, FakeEnvironment
from markdown_mermaid_pdf.assembler import AssemblyOptions, DocumentAssembler
from markdown_mermaid_pdf.diagrams import extract_diagrams
from markdown_mermaid_pdf.errors import (
    AssemblyError,
    ContentLoadError,
    RenderEnvironmentError,
    RendererUnavailableError,
)
from markdown_mermaid_pdf.orchestrator import RenderOrchestrator, RenderState, error_marker
from markdown_mermaid_pdf.timing import ConversionTiming

GOOD = "```mermaid\ngraph TD\n  A --> B\n```"
BAD = f"```mermaid\ngraph TD\n  A -->> {FAILURE_TOKEN} <b>\n```"


def build(quiet_logger, *fences):
    content = "\n\ntext\n\n".join(fences)
    return DocumentAssembler(AssemblyOptions(), quiet_logger).assemble(content, extract_diagrams(content))


def orchestrator_for(environment, logger, **kwargs):
    kwargs.setdefault("diagram_pause", 0)
    return RenderOrchestrator(environment, logger, ConversionTiming(), **kwargs)


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_all_diagrams_render(self, fake_environment, quiet_logger):
        orchestrator = orchestrator_for(fake_environment, quiet_logger)
        outcome = await orchestrator.run(build(quiet_logger, GOOD, GOOD))

        assert orchestrator.state is RenderState.RENDER_COMPLETE
        assert (outcome.total, outcome.rendered, outcome.failed) == (2, 2, 0)
        assert all(status == "rendered" for _, status in fake_environment.filled.values())

    @pytest.mark.asyncio
    async def test_renders_in_extraction_order(self, fake_environment, quiet_logger):
        await orchestrator_for(fake_environment, quiet_logger).run(build(quiet_logger, GOOD, BAD, GOOD))
        assert fake_environment.render_calls == ["mermaid-diagram-0", "mermaid-diagram-1", "mermaid-diagram-2"]

    @pytest.mark.asyncio
    async def test_zero_diagrams(self, fake_environment, quiet_logger):
        orchestrator = orchestrator_for(fake_environment, quiet_logger)
        outcome = await orchestrator.run(build(quiet_logger, "just text"))

        assert orchestrator.state is RenderState.RENDER_COMPLETE
        assert (outcome.total, outcome.rendered, outcome.failed) == (0, 0, 0)
        assert fake_environment.render_calls == []

    @pytest.mark.asyncio
    async def test_capability_wait_is_bounded(self, fake_environment, quiet_logger):
        await orchestrator_for(fake_environment, quiet_logger).run(build(quiet_logger, GOOD))
        assert fake_environment.capability_timeout == 10.0

    @pytest.mark.asyncio
    async def test_stage_timings_are_recorded(self, fake_environment, quiet_logger):
        orchestrator = orchestrator_for(fake_environment, quiet_logger)
        await orchestrator.run(build(quiet_logger, GOOD))

        timing = orchestrator.timing
        for bucket in ("browser_init", "content_load", "mermaid_load", "diagram_render"):
            assert getattr(timing, bucket) >= 0
        assert timing.diagram_render > 0


class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_one_bad_diagram_does_not_stop_the_others(self, fake_environment, quiet_logger):
        outcome = await orchestrator_for(fake_environment, quiet_logger).run(
            build(quiet_logger, GOOD, BAD, GOOD)
        )

        assert (outcome.total, outcome.rendered, outcome.failed) == (3, 2, 1)
        assert [d.rendered for d in outcome.diagrams] == [True, False, True]
        assert outcome.diagrams[1].error == "Parse error on line 2"

    @pytest.mark.asyncio
    async def test_error_marker_shows_the_source(self, fake_environment, quiet_logger):
        await orchestrator_for(fake_environment, quiet_logger).run(build(quiet_logger, BAD))

        markup, status = fake_environment.filled[0]
        assert status == "failed"
        assert 'class="mermaid-error"' in markup
        assert "Parse error on line 2" in markup
        assert f"A --&gt;&gt; {FAILURE_TOKEN} &lt;b&gt;" in markup

    def test_error_marker_escapes_html(self):
        marker = error_marker("bad <token>", "A --> <script>")
        assert "<script>" not in marker
        assert "&lt;script&gt;" in marker

    @pytest.mark.asyncio
    async def test_only_failures(self, fake_environment, quiet_logger):
        outcome = await orchestrator_for(fake_environment, quiet_logger).run(build(quiet_logger, BAD, BAD))
        assert (outcome.total, outcome.rendered, outcome.failed) == (2, 0, 2)


class TestFatalFailures:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("stage, error", [
        ("start", RenderEnvironmentError),
        ("load", ContentLoadError),
        ("capability", RendererUnavailableError),
        ("render", RenderEnvironmentError),
        ("fill", RenderEnvironmentError),
    ])
    async def test_infrastructure_failures_are_fatal(self, quiet_logger, stage, error):
        orchestrator = orchestrator_for(FakeEnvironment(fail_on=stage), quiet_logger)

        with pytest.raises(error):
            await orchestrator.run(build(quiet_logger, GOOD))
        assert orchestrator.state is RenderState.ERRORED

    @pytest.mark.asyncio
    async def test_renderer_timeout_message(self, quiet_logger):
        orchestrator = orchestrator_for(FakeEnvironment(fail_on="capability"), quiet_logger, renderer_timeout=2.5)

        with pytest.raises(RendererUnavailableError, match="within 2.5s"):
            await orchestrator.run(build(quiet_logger, GOOD))

    @pytest.mark.asyncio
    async def test_placeholder_mismatch(self, fake_environment, quiet_logger):
        document = build(quiet_logger, GOOD, GOOD)
        document.diagrams.pop()

        with pytest.raises(AssemblyError):
            await orchestrator_for(fake_environment, quiet_logger).run(document)


class TestDebugOverlay:
    @pytest.mark.asyncio
    async def test_reports_progress(self, fake_environment, quiet_logger):
        await orchestrator_for(fake_environment, quiet_logger, debug=True).run(build(quiet_logger, GOOD, BAD))

        assert "Mermaid: Rendering diagram 1/2..." in fake_environment.progress
        assert "Mermaid: Diagram 2 failed, continuing..." in fake_environment.progress
        assert fake_environment.progress[-1] == "Mermaid: 2 diagrams processed (1 rendered, 1 failed)."

    @pytest.mark.asyncio
    async def test_silent_without_debug(self, fake_environment, quiet_logger):
        await orchestrator_for(fake_environment, quiet_logger).run(build(quiet_logger, GOOD))
        assert fake_environment.progress == []

    @pytest.mark.asyncio
    async def test_overlay_failure_does_not_change_the_outcome(self, quiet_logger):
        environment = FakeEnvironment(fail_on="overlay")
        outcome = await orchestrator_for(environment, quiet_logger, debug=True).run(build(quiet_logger, GOOD))
        assert outcome.rendered == 1
