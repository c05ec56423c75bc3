from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from .gemini_client import GeminiClient
from .models import MAX_GRADE, MIN_GRADE, Lesson, Question, Subject, TypingQuestion

logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = (
	"You are an expert K-12 teacher. Generate accurate, educational, and engaging content. Ensure JSON is valid."
)

FALLBACK_DESCRIPTION = "We couldn't connect to the AI brain. Here is a sample typing exercise."
FALLBACK_PROMPT = "Type the following sentence accurately:"
FALLBACK_TEXT = "Technology helps us learn and grow every single day."

QUESTION_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"id": {"type": "STRING"},
		"type": {"type": "STRING", "enum": ["quiz", "typing"]},
		"prompt": {"type": "STRING", "description": "The question text or instruction"},
		"options": {
			"type": "ARRAY",
			"items": {"type": "STRING"},
			"description": "4 multiple choice options. Required if type is 'quiz'.",
		},
		"correctAnswer": {"type": "STRING", "description": "The correct option text. Required if type is 'quiz'."},
		"typingText": {
			"type": "STRING",
			"description": "The full paragraph or code snippet to type. Required if type is 'typing'.",
		},
	},
	"required": ["id", "type", "prompt"],
}

LESSON_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"title": {"type": "STRING"},
		"description": {"type": "STRING"},
		"questions": {"type": "ARRAY", "items": QUESTION_SCHEMA},
	},
	"required": ["title", "description", "questions"],
}

_question_adapter: TypeAdapter = TypeAdapter(Question)


class LessonFormatError(ValueError):
	pass


def build_lesson_prompt(grade: int, subject: Subject) -> str:
	if subject is Subject.MATH:
		return (
			f"Create a Grade {grade} Math lesson.\n"
			"Include 3 multiple choice questions (type: 'quiz') and 2 typing challenges (type: 'typing') "
			"where the student must type a math definition or a number sentence.\n"
			f"Topics should correspond to Grade {grade} curriculum (e.g. addition for Grade 1, Algebra for Grade 8)."
		)
	if subject is Subject.ENGLISH:
		return (
			f"Create a Grade {grade} English Grammar lesson.\n"
			"Include 3 multiple choice questions (type: 'quiz') spotting errors or choosing words.\n"
			"Include 2 typing challenges (type: 'typing') where the student types a grammatically correct "
			"sentence or paragraph suitable for their reading level."
		)
	if subject is Subject.AI_TECH:
		return (
			f"Create a Grade {grade} lesson about Artificial Intelligence and Technology.\n"
			"Simplify concepts for the specific grade level.\n"
			"Include 2 quiz questions and 3 typing challenges where they type definitions of AI concepts "
			"(e.g., 'Robot', 'Neural Network', 'Data')."
		)
	return (
		f"Create a Grade {grade} Computer Science lesson.\n"
		"For Grades 1-4, focus on hardware/basic terms. For 5-10, focus on coding concepts (Python/JS syntax).\n"
		"Include 1 quiz question and 4 typing challenges where they type actual code snippets or definitions."
	)


def fallback_lesson(grade: int, subject: Subject) -> Lesson:
	return Lesson(
		title=f"{subject.value} - Grade {grade} (Offline Mode)",
		description=FALLBACK_DESCRIPTION,
		questions=[TypingQuestion(id="fallback-1", prompt=FALLBACK_PROMPT, typing_text=FALLBACK_TEXT)],
	)


def _extract_json_block(text: str) -> Dict[str, Any]:
	try:
		data = json.loads(text)
	except ValueError:
		# Models sometimes wrap the object in prose or a ```json fence
		match = re.search(r"\{[\s\S]*\}", text)
		if not match:
			raise LessonFormatError("no JSON object in model output")
		try:
			data = json.loads(match.group(0))
		except ValueError as e:
			raise LessonFormatError(f"invalid JSON in model output: {e}") from e
	if not isinstance(data, dict):
		raise LessonFormatError("model output is not a JSON object")
	return data


def parse_lesson(text: str) -> Lesson:
	data = _extract_json_block(text)
	raw_questions = data.get("questions")
	if not isinstance(raw_questions, list):
		raise LessonFormatError("lesson has no questions array")

	questions: List[Any] = []
	seen: set[str] = set()
	for n, raw in enumerate(raw_questions, start=1):
		if not isinstance(raw, dict):
			logger.warning("dropping question %d: not an object", n)
			continue
		item = dict(raw)
		qid = str(item.get("id") or "").strip()
		if not qid or qid in seen:
			qid = f"q{n}"
			while qid in seen:
				qid += "-dup"
		item["id"] = qid
		try:
			question = _question_adapter.validate_python(item)
		except ValidationError as e:
			logger.warning("dropping question %d: %s", n, e.errors()[0].get("msg", "invalid"))
			continue
		seen.add(qid)
		questions.append(question)

	if not questions:
		raise LessonFormatError("lesson has no usable questions")
	try:
		return Lesson(
			title=str(data.get("title") or "").strip() or "Lesson",
			description=str(data.get("description") or "").strip(),
			questions=questions,
		)
	except ValidationError as e:
		raise LessonFormatError(str(e)) from e


class GeminiLessonProvider:
	"""Generates a lesson with Gemini; any failure yields the offline fallback lesson."""

	def __init__(self, *, model: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
		self.model = model
		self._transport = transport

	async def generate_lesson(self, grade: int, subject: Subject) -> Lesson:
		if not MIN_GRADE <= grade <= MAX_GRADE:
			raise ValueError(f"grade must be between {MIN_GRADE} and {MAX_GRADE}")
		client: Optional[GeminiClient] = None
		try:
			client = GeminiClient(model=self.model, transport=self._transport)
			raw = await client.generate_json(
				build_lesson_prompt(grade, subject),
				response_schema=LESSON_SCHEMA,
				system_instruction=SYSTEM_INSTRUCTION,
			)
			lesson = parse_lesson(raw)
			logger.info("generated lesson %r with %d questions", lesson.title, len(lesson.questions))
			return lesson
		except (ValueError, RuntimeError, httpx.HTTPError) as e:
			# LessonFormatError and a missing API key are both ValueErrors.
			# Transport errors carry the request URL, which may hold the key.
			reason = str(e) if isinstance(e, ValueError) else type(e).__name__
			logger.warning("lesson generation failed for grade %d %s: %s", grade, subject.value, reason)
			return fallback_lesson(grade, subject)
		finally:
			if client is not None:
				await client.aclose()


_provider: Optional[GeminiLessonProvider] = None


def get_lesson_provider() -> GeminiLessonProvider:
	global _provider
	if _provider is None:
		_provider = GeminiLessonProvider()
	return _provider
