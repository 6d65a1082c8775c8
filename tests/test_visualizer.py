import asyncio

import pytest

from models.analysis import Analysis, Category
from services.planner.visualizer import GenerationOrchestrator
from utils.errors import GenerationFailure, TransportError
from conftest import FakeModelClient, make_png

RED = make_png((255, 0, 0))
GREEN = make_png((0, 255, 0))
BLUE = make_png((0, 0, 255))


async def test_incremental_chains_each_output_into_next_call(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[RED, GREEN, BLUE])
    orchestrator = GenerationOrchestrator(fake, store)

    result = await orchestrator.run_incremental(source_image, three_step_analysis, session_timestamp=1000)

    assert result.mode == "incremental"
    assert [s.index for s in result.steps] == [0, 1, 2]
    assert [s.category for s in result.steps] == [Category.WALKABILITY, Category.TRANSPORTATION, Category.GREENERY]
    calls = fake.image_calls
    assert calls[0]["images"][0] is source_image
    assert calls[1]["images"][0].data == RED
    assert calls[2]["images"][0].data == GREEN
    assert "IMPROVEMENT (1 of 3)" in calls[0]["prompt"]
    assert "IMPROVEMENT (3 of 3)" in calls[2]["prompt"]


async def test_final_image_is_last_step_when_all_steps_succeed(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[RED, GREEN, BLUE])

    result = await GenerationOrchestrator(fake, store).run_incremental(
        source_image, three_step_analysis, session_timestamp=1001
    )

    assert len(result.steps) == len(three_step_analysis.recommendations)
    assert result.final_image_ref == result.steps[-1].image_ref
    assert result.download_ref == "/results/improved-1001.png"
    assert store.resolve(result.download_ref).read_bytes() == BLUE
    assert store.resolve("/results/improved-1001-step-2.png").read_bytes() == GREEN


async def test_step_without_image_is_skipped(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[RED, None, BLUE])

    result = await GenerationOrchestrator(fake, store).run_incremental(
        source_image, three_step_analysis, session_timestamp=1002
    )

    assert [(s.index, s.category) for s in result.steps] == [
        (0, Category.WALKABILITY),
        (1, Category.GREENERY),
    ]
    assert result.skipped_indices == (1,)
    assert result.final_image_ref == "/results/improved-1002-step-3.png"
    assert store.resolve(result.final_image_ref).read_bytes() == BLUE
    # The skipped step does not break the chain: step 3 edits step 1's output.
    assert fake.image_calls[2]["images"][0].data == RED
    assert len(fake.image_calls) == 3


async def test_first_image_wins_when_several_are_returned(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[(RED, GREEN), BLUE, BLUE])

    result = await GenerationOrchestrator(fake, store).run_incremental(
        source_image, three_step_analysis, session_timestamp=1003
    )

    assert store.resolve(result.steps[0].image_ref).read_bytes() == RED
    assert fake.image_calls[1]["images"][0].data == RED


async def test_all_steps_empty_falls_back_to_single_shot_once(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[None, None, None, GREEN])

    result = await GenerationOrchestrator(fake, store).run_incremental(
        source_image, three_step_analysis, session_timestamp=1004
    )

    assert result.mode == "single_shot"
    assert len(fake.image_calls) == 4
    last_call = fake.image_calls[-1]
    assert last_call["images"][0] is source_image
    assert "Transform this urban space" in last_call["prompt"]
    assert result.final_image_ref == "/results/improved-1004.png"
    assert len(result.steps) == 3
    assert {s.image_ref for s in result.steps} == {result.final_image_ref}


async def test_fallback_failure_raises_generation_failure(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[None, None, None, None])

    with pytest.raises(GenerationFailure):
        await GenerationOrchestrator(fake, store).run_incremental(source_image, three_step_analysis)


async def test_single_shot_returns_one_step_per_recommendation(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[GREEN])

    result = await GenerationOrchestrator(fake, store).run(
        source_image, three_step_analysis, incremental=False, session_timestamp=1005
    )

    assert len(fake.image_calls) == 1
    assert [s.index for s in result.steps] == [0, 1, 2]
    assert [s.description for s in result.steps] == [r.recommendation for r in three_step_analysis.recommendations]
    assert store.resolve(result.final_image_ref).read_bytes() == GREEN


async def test_empty_recommendations_go_straight_to_single_shot(store, source_image):
    fake = FakeModelClient(image_outcomes=[GREEN])

    result = await GenerationOrchestrator(fake, store).run_incremental(
        source_image, Analysis(overall_description="x"), session_timestamp=1006
    )

    assert result.mode == "single_shot"
    assert result.steps == ()
    assert result.final_image_ref == "/results/improved-1006.png"


async def test_transport_error_propagates(store, source_image, three_step_analysis):
    fake = FakeModelClient(image_outcomes=[RED, TransportError("connection reset")])

    with pytest.raises(TransportError):
        await GenerationOrchestrator(fake, store).run_incremental(
            source_image, three_step_analysis, session_timestamp=1007
        )

    # Already persisted steps stay on disk.
    assert store.resolve("/results/improved-1007-step-1.png").exists()


async def test_cancellation_keeps_written_files(store, source_image, three_step_analysis):
    started = asyncio.Event()

    class SlowClient(FakeModelClient):
        async def generate(self, images, prompt, mode):
            if len(self.calls) == 1:
                started.set()
                await asyncio.sleep(10)
            return await super().generate(images, prompt, mode)

    fake = SlowClient(image_outcomes=[RED, GREEN, BLUE])
    task = asyncio.create_task(
        GenerationOrchestrator(fake, store).run_incremental(source_image, three_step_analysis, session_timestamp=1008)
    )
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.resolve("/results/improved-1008-step-1.png").read_bytes() == RED
    assert not (store.results_dir / "improved-1008-step-2.png").exists()


def test_orchestrator_requires_model_client(store):
    with pytest.raises(ValueError):
        GenerationOrchestrator(None, store)

