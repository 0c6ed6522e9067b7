import asyncio
import random

from exam_engine.generation.question_bank import QuestionBankBuilder, namespace_batch, plan_batches
from exam_engine.schemas import ExamConfig, Question, QuestionKind, ReferenceMode
from exam_engine.session.store import SessionStore

from conftest import FakeRedis, ScriptedGenerator, as_json, mc_item, written_item


def test_plan_batches_splits_remainder_into_last_batch():
    batches = plan_batches(45, 20)
    assert [b.size for b in batches] == [20, 20, 5]
    assert [b.index for b in batches] == [1, 2, 3]
    assert all(b.total == 3 for b in batches)


def test_plan_batches_exact_multiple():
    assert [b.size for b in plan_batches(40, 20)] == [20, 20]


def test_namespace_batch_prefixes_ids_and_groups():
    questions = [
        Question(id="q1", text="a", passage="p", group_id="1"),
        Question(id="q3_2", text="b"),
    ]
    out = namespace_batch(questions, 3)
    assert out[0].id == "q3_1"
    assert out[0].group_id == "group3_1"
    assert out[1].id == "q3_2"


def test_batched_build_pins_kind_from_first_batch():
    generator = ScriptedGenerator([
        as_json([mc_item(n) for n in range(1, 21)]),
        as_json([written_item(n) for n in range(1, 21)]),
        as_json([mc_item(n) for n in range(1, 6)]),
    ])
    exam = ExamConfig(document_id="doc", question_count=45, reference_mode=ReferenceMode.GENERATE)
    progress = []

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam, on_progress=progress.append))

    assert len(generator.calls) == 3
    assert len(result.questions) == 45
    assert result.kind == QuestionKind.MULTIPLE_CHOICE
    assert {q.kind for q in result.questions} == {QuestionKind.MULTIPLE_CHOICE}
    assert len({q.id for q in result.questions}) == 45
    assert result.warnings == []

    assert "DECIDE THE TEST KIND" in generator.calls[0]["prompt"]
    assert "already fixed: MULTIPLE CHOICE" in generator.calls[1]["prompt"]
    assert "already fixed: MULTIPLE CHOICE" in generator.calls[2]["prompt"]
    assert "Question number 20?" in generator.calls[1]["prompt"]

    assert [p.stage for p in progress] == ["batch", "batch", "batch", "done"]
    assert progress[-1].questions == 45


def test_written_kind_is_pinned_for_later_batches():
    generator = ScriptedGenerator([
        as_json([written_item(n) for n in range(1, 21)]),
        as_json([mc_item(n) for n in range(1, 6)]),
    ])
    exam = ExamConfig(document_id="doc", question_count=25, reference_mode=ReferenceMode.GENERATE)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert result.kind == QuestionKind.WRITTEN
    assert "already fixed: WRITTEN" in generator.calls[1]["prompt"]
    assert all(q.options == [] for q in result.questions)


def test_failed_batch_is_skipped_with_warning():
    generator = ScriptedGenerator([
        as_json([mc_item(n) for n in range(1, 21)]),
        RuntimeError("quota exceeded"),
        as_json([mc_item(n) for n in range(1, 6)]),
    ])
    exam = ExamConfig(document_id="doc", question_count=45, reference_mode=ReferenceMode.GENERATE)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert len(generator.calls) == 3
    assert len(result.questions) == 25
    assert result.warnings == ["Batch 2 failed, results may be incomplete"]
    assert result.questions[-1].id == "q3_5"


def test_large_extract_is_a_single_pass():
    generator = ScriptedGenerator([as_json([mc_item(n) for n in range(1, 31)])])
    exam = ExamConfig(document_id="doc", question_count=30, reference_mode=ReferenceMode.EXTRACT)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert len(generator.calls) == 1
    assert "EXTRACT QUESTIONS" in generator.calls[0]["prompt"]
    assert "WRITE NEW" not in generator.calls[0]["prompt"]
    assert [q.id for q in result.questions] == [f"q{n}" for n in range(1, 31)]


def test_oversized_batch_is_trimmed():
    generator = ScriptedGenerator([
        as_json([mc_item(n) for n in range(1, 26)]),
        as_json([mc_item(n) for n in range(1, 6)]),
    ])
    exam = ExamConfig(document_id="doc", question_count=25, reference_mode=ReferenceMode.GENERATE)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert len(result.questions) == 25


def test_single_pass_extract_uses_instructions_and_trims():
    generator = ScriptedGenerator([as_json([mc_item(n) for n in range(1, 7)])])
    exam = ExamConfig(document_id="doc", question_count=4, instructions="Answer in English.", model_id="m-1")

    result = asyncio.run(QuestionBankBuilder(generator).build("attachment", exam))

    call = generator.calls[0]
    assert "EXTRACT QUESTIONS" in call["prompt"]
    assert call["attachment"] == "attachment"
    assert call["system_instruction"] == "Answer in English."
    assert call["model_id"] == "m-1"
    assert [q.id for q in result.questions] == ["q1", "q2", "q3", "q4"]
    assert result.kind == QuestionKind.MULTIPLE_CHOICE


def test_single_pass_without_array_falls_back_to_essay():
    generator = ScriptedGenerator(["This document is a project brief, there are no questions."])
    exam = ExamConfig(document_id="doc", question_count=5)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert result.kind == QuestionKind.ESSAY
    assert result.questions == []
    assert len(result.warnings) == 1


def test_single_pass_empty_array_is_an_essay():
    generator = ScriptedGenerator(["[]"])
    exam = ExamConfig(document_id="doc", question_count=5)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert result.kind == QuestionKind.ESSAY
    assert result.warnings == []


def test_mixed_single_pass_resolves_to_written():
    generator = ScriptedGenerator([as_json([mc_item(1), written_item(2)])])
    exam = ExamConfig(document_id="doc", question_count=2)

    result = asyncio.run(QuestionBankBuilder(generator).build(None, exam))

    assert result.kind == QuestionKind.WRITTEN
    assert [q.kind for q in result.questions] == [QuestionKind.WRITTEN, QuestionKind.WRITTEN]


def test_cached_bank_is_reused():
    store = SessionStore(client=FakeRedis())
    generator = ScriptedGenerator([as_json([mc_item(n) for n in range(1, 4)])])
    exam = ExamConfig(document_id="doc", question_count=3)
    builder = QuestionBankBuilder(generator, store=store)

    first = asyncio.run(builder.build(None, exam, cache_key="questions:doc"))
    second = asyncio.run(builder.build(None, exam, cache_key="questions:doc"))

    assert len(generator.calls) == 1
    assert first.from_cache is False
    assert second.from_cache is True
    assert [q.id for q in second.questions] == [q.id for q in first.questions]


def test_shuffle_applies_after_build():
    generator = ScriptedGenerator([as_json([mc_item(n) for n in range(1, 11)])])
    exam = ExamConfig(document_id="doc", question_count=10, shuffle_questions=True, shuffle_options=True)

    result = asyncio.run(QuestionBankBuilder(generator, rng=random.Random(7)).build(None, exam))

    assert sorted(q.id for q in result.questions) == sorted(f"q{n}" for n in range(1, 11))
    assert [q.id for q in result.questions] != [f"q{n}" for n in range(1, 11)]
