from __future__ import annotations

import os
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Test-mode runtime guards: no external LLM traffic, no stray .env keys
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENROUTER_API_KEY"] = ""

from brainkey.lesson_provider import get_lesson_provider  # noqa: E402
from brainkey.main import app  # noqa: E402
from brainkey.models import Lesson, QuizQuestion, Subject, TypingQuestion  # noqa: E402
from brainkey.routers import auth  # noqa: E402


class FakeClock:
	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def tick(self, seconds: float) -> None:
		self.now += seconds


class FakeProvider:
	"""Returns a canned lesson and remembers what was asked for."""

	def __init__(self, lesson: Lesson, error: Optional[Exception] = None) -> None:
		self.lesson = lesson
		self.error = error
		self.calls: List[Tuple[int, Subject]] = []

	async def generate_lesson(self, grade: int, subject: Subject) -> Lesson:
		self.calls.append((grade, subject))
		if self.error is not None:
			raise self.error
		return self.lesson


def make_quiz(qid: str = "q1", answer: str = "4") -> QuizQuestion:
	return QuizQuestion(id=qid, prompt="What is 2 + 2?", options=["2", "3", "4", "5"], correct_answer=answer)


def make_typing(qid: str = "t1", text: str = "cat sat") -> TypingQuestion:
	return TypingQuestion(id=qid, prompt="Type this:", typing_text=text)


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def quiz_lesson() -> Lesson:
	return Lesson(title="Adding", description="Small sums", questions=[make_quiz()])


@pytest.fixture
def typing_lesson() -> Lesson:
	return Lesson(title="Typing", description="Short sentence", questions=[make_typing()])


@pytest.fixture
def mixed_lesson() -> Lesson:
	return Lesson(
		title="Mixed",
		description="One of each",
		questions=[make_quiz("q1"), make_typing("t1"), make_quiz("q2", answer="2")],
	)


@pytest.fixture
def provider(mixed_lesson: Lesson) -> FakeProvider:
	return FakeProvider(mixed_lesson)


@pytest.fixture
def client(provider: FakeProvider):
	app.dependency_overrides[get_lesson_provider] = lambda: provider
	with TestClient(app) as tc:
		yield tc
	app.dependency_overrides.clear()
	auth.reset_shells()


@pytest.fixture
def auth_headers(client: TestClient):
	resp = client.post("/auth/login", json={"username": "Alex", "grade": 3})
	assert resp.status_code == 200
	return {"Authorization": f"Bearer {resp.json()['access_token']}"}
