import json
from typing import Callable, List, Optional, Union

import httpx
import pytest
import redis

from exam_engine.schemas import Attachment, ExamConfig, Question, QuestionKind
from exam_engine.session.store import SessionStore
from exam_engine.submission.client import SubmissionClient


class FakeRedis:
    """The string commands the store uses."""

    def __init__(self):
        self.data = {}
        self.ttl = {}
        self.fail_writes = False
        self.fail_reads = False
        self.writes = 0

    def get(self, key):
        if self.fail_reads:
            raise redis.ConnectionError("redis is down")
        return self.data.get(key)

    def set(self, key, value, ex=None):
        if self.fail_writes:
            raise redis.ConnectionError("redis is down")
        self.writes += 1
        self.data[key] = value
        self.ttl[key] = ex

    def expire(self, key, seconds):
        if self.fail_writes:
            raise redis.ConnectionError("redis is down")
        if key not in self.data:
            return False
        self.ttl[key] = seconds
        return True

    def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
            self.ttl.pop(key, None)


class ScriptedGenerator:
    """Replays canned responses in order and records every call."""

    def __init__(self, responses: Optional[List[Union[str, Exception, Callable]]] = None):
        self.responses = list(responses or [])
        self.calls = []

    async def generate(self, prompt, attachment=None, model_id=None, system_instruction=None, temperature=None):
        self.calls.append({
            "prompt": prompt,
            "attachment": attachment,
            "model_id": model_id,
            "system_instruction": system_instruction,
        })
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeBackend:
    """In-memory submission backend behind httpx.MockTransport."""

    def __init__(self):
        self.submitted = []
        self.prior = None
        self.fail_submits = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/submit"):
            if self.fail_submits > 0:
                self.fail_submits -= 1
                return httpx.Response(503, json={"error": "unavailable"})
            body = json.loads(request.content)
            self.submitted.append(body)
            return httpx.Response(200, json={"submissionId": f"sub-{len(self.submitted)}"})
        if request.url.path.endswith("/result"):
            return httpx.Response(200, json={"result": self.prior})
        return httpx.Response(404)

    def client(self) -> SubmissionClient:
        return SubmissionClient(base_url="http://backend.test/api/exams", transport=httpx.MockTransport(self.handler))


def mc_item(n, prefix="q", answer="A"):
    return {
        "id": f"{prefix}{n}",
        "text": f"Question number {n}?",
        "options": [f"A. alpha {n}", f"B. beta {n}", f"C. gamma {n}", f"D. delta {n}"],
        "correctAnswer": f"{answer}. alpha {n}" if answer == "A" else f"{answer}. beta {n}",
        "passage": None,
        "groupId": None,
    }


def written_item(n, prefix="q"):
    return {
        "id": f"{prefix}{n}",
        "text": f"Define term {n}: ___",
        "options": [],
        "type": "written",
        "correctAnswer": f"term {n}",
    }


def as_json(items) -> str:
    return "Here are the questions:\n```json\n" + json.dumps(items) + "\n```"


def make_questions(count, kind=QuestionKind.MULTIPLE_CHOICE):
    questions = []
    for n in range(1, count + 1):
        if kind == QuestionKind.MULTIPLE_CHOICE:
            questions.append(Question(
                id=f"q{n}",
                text=f"Question {n}?",
                options=[f"A. alpha {n}", f"B. beta {n}", f"C. gamma {n}"],
                correct_answer=f"A. alpha {n}",
                kind=kind,
            ))
        else:
            questions.append(Question(id=f"q{n}", text=f"Explain {n}", correct_answer=f"answer {n}", kind=kind))
    return questions


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return SessionStore(client=fake_redis)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def document():
    return Attachment(mime_type="text/plain", data=b"Photosynthesis converts light energy.", name="bio.txt")


@pytest.fixture
def exam():
    return ExamConfig(document_id="doc-1", title="Biology quiz", question_count=4)
