import random

from exam_engine.generation.shuffler import shuffle_options, shuffle_questions
from exam_engine.schemas import Question, QuestionKind

from conftest import make_questions


def _bank():
    questions = make_questions(8)
    grouped = [
        q.model_copy(update={"passage": "Shared passage", "group_id": "g1"})
        for q in (questions[2], questions[3])
    ]
    return questions[:2] + grouped + questions[4:]


def test_grouped_questions_keep_their_slots():
    bank = _bank()
    for seed in range(20):
        shuffled = shuffle_questions(bank, random.Random(seed))
        assert shuffled[2].id == "q3"
        assert shuffled[3].id == "q4"
        assert sorted(q.id for q in shuffled) == sorted(q.id for q in bank)


def test_standalone_questions_are_permuted():
    bank = _bank()
    orders = {tuple(q.id for q in shuffle_questions(bank, random.Random(seed))) for seed in range(20)}
    assert len(orders) > 1


def test_empty_bank():
    assert shuffle_questions([]) == []


def test_only_choice_options_are_shuffled():
    written = Question(id="w", text="Define", options=[], kind=QuestionKind.WRITTEN)
    choice = Question(id="c", text="Pick", options=["red", "green", "blue"], correct_answer="green")
    shuffled = shuffle_options([written, choice], random.Random(3))
    assert shuffled[0] == written
    assert sorted(shuffled[1].options) == sorted(choice.options)
    assert shuffled[1].correct_answer == "green"


def _lettered(correct):
    return Question(
        id="q1",
        text="Which one?",
        options=["A. alpha", "B. beta", "C. gamma", "D. delta"],
        correct_answer=correct,
    )


def test_lettered_options_are_relabelled_in_order():
    orders = set()
    for seed in range(10):
        q = shuffle_options([_lettered("B. beta")], random.Random(seed))[0]
        assert [o[:3] for o in q.options] == ["A. ", "B. ", "C. ", "D. "]
        assert sorted(o[3:] for o in q.options) == ["alpha", "beta", "delta", "gamma"]
        assert q.correct_answer in q.options
        assert q.correct_answer.endswith("beta")
        orders.add(tuple(q.options))
    assert len(orders) > 1


def test_bare_letter_answer_follows_its_option():
    for seed in range(10):
        q = shuffle_options([_lettered("C")], random.Random(seed))[0]
        assert len(q.correct_answer) == 1
        assert q.options["ABCD".index(q.correct_answer)] == f"{q.correct_answer}. gamma"
