"""Tests for the chained three-stage orchestration."""

from functools import partial
from unittest.mock import Mock

import pytest

from lookbook.ai_generation import build_custom_edit_prompt, build_stage_prompt
from lookbook.common import (
    ErrorKind,
    QuotaExhausted,
    RemoteCallError,
    SafetyBlocked,
    ServiceUnavailable,
    Stage,
    with_retry,
)
from lookbook.pipeline import RunState, StageOrchestrator, StageRun, derive_identity_seed

from .conftest import RecordingSynthesizer, make_identity


def _orchestrator(synthesizer, **kwargs) -> StageOrchestrator:
    kwargs.setdefault("retry_fn", partial(with_retry, sleep=Mock(), jitter=lambda: 0.0))
    return StageOrchestrator(synthesizer, **kwargs)


class TestOrchestrate:
    def test_renders_three_stages_in_order(self):
        synthesizer = RecordingSynthesizer()
        images = _orchestrator(synthesizer).orchestrate(make_identity(1))

        assert list(images) == [Stage.BASE, Stage.INTERMEDIATE, Stage.FINAL]
        assert images == {
            Stage.BASE: "image-0",
            Stage.INTERMEDIATE: "image-1",
            Stage.FINAL: "image-2",
        }

    def test_each_stage_edits_the_previous_stage_output(self):
        synthesizer = RecordingSynthesizer()
        _orchestrator(synthesizer).orchestrate(make_identity(1))

        references = [call["reference"] for call in synthesizer.calls]
        assert references == [None, "image-0", "image-1"]

    def test_on_stage_ready_fires_after_each_stage(self):
        events = []
        _orchestrator(RecordingSynthesizer()).orchestrate(
            make_identity(1), lambda stage, image: events.append((stage, image))
        )
        assert events == [
            (Stage.BASE, "image-0"),
            (Stage.INTERMEDIATE, "image-1"),
            (Stage.FINAL, "image-2"),
        ]

    def test_prompts_match_stage_prompt_builder(self):
        identity = make_identity(3)
        synthesizer = RecordingSynthesizer()
        _orchestrator(synthesizer).orchestrate(identity)

        for stage, call in zip(Stage, synthesizer.calls):
            assert call["prompt"] == build_stage_prompt(stage, identity).primary

    def test_same_seed_is_used_for_every_stage(self):
        identity = make_identity(2)
        synthesizer = RecordingSynthesizer()
        _orchestrator(synthesizer).orchestrate(identity)

        seeds = {call["kwargs"]["seed"] for call in synthesizer.calls}
        assert seeds == {derive_identity_seed(identity)}

    def test_seed_can_be_disabled(self):
        synthesizer = RecordingSynthesizer()
        _orchestrator(synthesizer, lock_seed=False).orchestrate(make_identity(2))
        assert all(call["kwargs"] == {} for call in synthesizer.calls)

    def test_run_reaches_terminal_state(self):
        identity = make_identity(1)
        run = StageRun(identity=identity)
        _orchestrator(RecordingSynthesizer()).orchestrate(identity, run=run)

        assert run.state is RunState.STAGE2_DONE
        assert run.is_terminal
        assert run.next_stage is None


class TestPartialFailure:
    def test_stage_one_failure_keeps_only_stage_zero(self):
        identity = make_identity(1)
        synthesizer = RecordingSynthesizer(
            failures={1: RemoteCallError(ErrorKind.OTHER, "upstream 500")}
        )
        run = StageRun(identity=identity)
        events = []

        with pytest.raises(ServiceUnavailable):
            _orchestrator(synthesizer).orchestrate(
                identity, lambda stage, image: events.append(stage), run=run
            )

        assert run.images == {Stage.BASE: "image-0"}
        assert run.state is RunState.FAILED
        assert isinstance(run.error, ServiceUnavailable)
        assert events == [Stage.BASE]
        assert len(synthesizer.calls) == 2

    def test_first_stage_failure_fails_from_not_started(self):
        identity = make_identity(1)
        run = StageRun(identity=identity)
        synthesizer = RecordingSynthesizer(failures={0: RuntimeError("down")})

        with pytest.raises(ServiceUnavailable):
            _orchestrator(synthesizer).orchestrate(identity, run=run)

        assert run.images == {}
        assert run.state is RunState.FAILED

    def test_quota_exhaustion_stops_after_max_attempts(self):
        quota = RemoteCallError(ErrorKind.TRANSIENT, "429")
        synthesizer = RecordingSynthesizer(failures={1: quota, 2: quota, 3: quota})

        with pytest.raises(QuotaExhausted):
            _orchestrator(synthesizer, max_attempts=3).orchestrate(make_identity(1))

        assert len(synthesizer.calls) == 4

    def test_transient_failure_recovers_with_same_reference(self):
        synthesizer = RecordingSynthesizer(
            failures={1: RemoteCallError(ErrorKind.TRANSIENT, "429")}
        )
        images = _orchestrator(synthesizer).orchestrate(make_identity(1))

        assert synthesizer.calls[2]["reference"] == "image-0"
        assert images[Stage.INTERMEDIATE] == "image-2"
        assert images[Stage.FINAL] == "image-3"
        assert synthesizer.calls[3]["reference"] == "image-2"

    def test_safety_block_tries_fallback_prompt_once(self):
        identity = make_identity(1)
        synthesizer = RecordingSynthesizer(failures={1: SafetyBlocked("no image")})

        images = _orchestrator(synthesizer).orchestrate(identity)

        fallback = build_stage_prompt(Stage.INTERMEDIATE, identity).fallback
        assert synthesizer.calls[2]["prompt"] == fallback
        assert synthesizer.calls[2]["reference"] == "image-0"
        assert images[Stage.INTERMEDIATE] == "image-2"

    def test_safety_block_on_fallback_fails_identity_without_retry(self):
        synthesizer = RecordingSynthesizer(
            failures={0: SafetyBlocked("primary"), 1: SafetyBlocked("fallback")}
        )
        with pytest.raises(SafetyBlocked):
            _orchestrator(synthesizer).orchestrate(make_identity(1))
        assert len(synthesizer.calls) == 2


class TestStageRun:
    def test_rejects_out_of_order_stage(self):
        run = StageRun(identity=make_identity(1))
        with pytest.raises(ValueError):
            run.record(Stage.INTERMEDIATE, "image")

    def test_cannot_fail_after_terminal(self):
        run = StageRun(identity=make_identity(1))
        for stage in Stage:
            run.record(stage, f"image-{stage}")
        with pytest.raises(ValueError):
            run.fail(RuntimeError("late"))

    def test_orchestrate_rejects_used_run(self):
        identity = make_identity(1)
        run = StageRun(identity=identity)
        run.record(Stage.BASE, "image")
        with pytest.raises(ValueError):
            _orchestrator(RecordingSynthesizer()).orchestrate(identity, run=run)


class TestSingleRenders:
    def test_later_stage_requires_reference(self):
        with pytest.raises(ValueError):
            _orchestrator(RecordingSynthesizer()).render_stage(
                make_identity(1), Stage.FINAL, None
            )

    def test_custom_edit_uses_edit_prompt_and_reference(self):
        identity = make_identity(1)
        synthesizer = RecordingSynthesizer()

        image = _orchestrator(synthesizer).render_custom_edit("add a red scarf", "current", identity)

        assert image == "image-0"
        call = synthesizer.calls[0]
        assert call["reference"] == "current"
        assert call["prompt"] == build_custom_edit_prompt("add a red scarf", identity).primary
