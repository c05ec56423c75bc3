"""Lesson session state machine: answer checking, scoring and typing speed.

An ``ActivitySession`` walks one lesson from the first question to completion.
It never performs I/O and never sleeps; the caller owns timers and decides when
to call ``advance()`` after a successful answer.
"""

from __future__ import annotations
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .models import (
	NO_FEEDBACK,
	Feedback,
	FeedbackKind,
	Lesson,
	QuestionView,
	QuizQuestion,
	SessionView,
	TypingQuestion,
)

logger = logging.getLogger(__name__)


QUIZ_POINTS = 10
TYPING_POINTS = 20
QUIZ_ADVANCE_DELAY_MS = 1500
TYPING_ADVANCE_DELAY_MS = 2000
MIN_ELAPSED_MINUTES = 0.01

QUIZ_CORRECT_MSG = "Correct! Amazing job!"
QUIZ_WRONG_MSG = "Oops! Try again."
TYPING_PENDING_MSG = "Keep typing..."
TYPING_WRONG_MSG = "Check your spelling and punctuation!"


class ActivityError(Exception):
	"""Raised when an operation does not apply to the session's current state."""


class WrongQuestionType(ActivityError):
	pass


class SessionFinished(ActivityError):
	pass


@dataclass(frozen=True)
class SubmitOutcome:
	feedback: Feedback
	points: int = 0
	# Set only on success: how long the caller should wait before advancing
	advance_after_ms: Optional[int] = None


def count_words(text: str) -> int:
	return len(text.strip().split())


def words_per_minute(text: str, elapsed_seconds: float) -> int:
	minutes = max(elapsed_seconds / 60.0, MIN_ELAPSED_MINUTES)
	# Half-up rounding, so 2.5 WPM reads as 3
	return int(math.floor(count_words(text) / minutes + 0.5))


class ActivitySession:
	def __init__(
		self,
		lesson: Lesson,
		*,
		session_id: Optional[str] = None,
		clock: Callable[[], float] = time.monotonic,
		quiz_advance_ms: int = QUIZ_ADVANCE_DELAY_MS,
		typing_advance_ms: int = TYPING_ADVANCE_DELAY_MS,
	) -> None:
		self.session_id: str = session_id or uuid.uuid4().hex
		self.lesson = lesson
		self._clock = clock
		self._quiz_advance_ms = quiz_advance_ms
		self._typing_advance_ms = typing_advance_ms
		self.index: int = 0
		self.score: int = 0
		self.input: str = ""
		self.feedback: Feedback = NO_FEEDBACK
		self.wpm: int = 0
		self.final_score: Optional[int] = None
		self._typing_started_at: Optional[float] = None

	@property
	def total(self) -> int:
		return len(self.lesson.questions)

	@property
	def complete(self) -> bool:
		return self.final_score is not None

	@property
	def is_last(self) -> bool:
		return self.index == self.total - 1

	@property
	def awaiting_advance(self) -> bool:
		return not self.complete and self.feedback.kind is FeedbackKind.SUCCESS

	@property
	def current_question(self) -> Union[QuizQuestion, TypingQuestion]:
		self._require_in_progress()
		return self.lesson.questions[self.index]

	def _require_in_progress(self) -> None:
		if self.complete:
			raise SessionFinished(f"session {self.session_id} is already complete")

	def _require_typing(self) -> TypingQuestion:
		question = self.current_question
		if not isinstance(question, TypingQuestion):
			raise WrongQuestionType(f"question {question.id} is not a typing question")
		return question

	def _require_quiz(self) -> QuizQuestion:
		question = self.current_question
		if not isinstance(question, QuizQuestion):
			raise WrongQuestionType(f"question {question.id} is not a quiz question")
		return question

	def select_option(self, option: str) -> None:
		self._require_quiz()
		self.input = option

	def record_keystroke(self, raw_input: str) -> int:
		self._require_typing()
		now = self._clock()
		if self._typing_started_at is None:
			self._typing_started_at = now
		self.input = raw_input
		self.wpm = words_per_minute(raw_input, now - self._typing_started_at)
		return self.wpm

	def submit_input(self, raw_input: str) -> SubmitOutcome:
		question = self.current_question
		self.input = raw_input
		if not raw_input.strip():
			return SubmitOutcome(feedback=self.feedback)
		if self.awaiting_advance:
			# Already answered; the pending advance owns this question now
			return SubmitOutcome(feedback=self.feedback)
		if isinstance(question, QuizQuestion):
			outcome = self._check_quiz(question, raw_input)
		else:
			outcome = self._check_typing(question, raw_input)
		self.feedback = outcome.feedback
		self.score += outcome.points
		logger.debug(
			"session %s q%d -> %s (score=%d)", self.session_id, self.index, outcome.feedback.kind.value, self.score
		)
		return outcome

	def _check_quiz(self, question: QuizQuestion, raw_input: str) -> SubmitOutcome:
		if raw_input == question.correct_answer:
			return SubmitOutcome(
				feedback=Feedback(kind=FeedbackKind.SUCCESS, message=QUIZ_CORRECT_MSG),
				points=QUIZ_POINTS,
				advance_after_ms=self._quiz_advance_ms,
			)
		return SubmitOutcome(feedback=Feedback(kind=FeedbackKind.ERROR, message=QUIZ_WRONG_MSG))

	def _check_typing(self, question: TypingQuestion, raw_input: str) -> SubmitOutcome:
		target = question.typing_text
		if raw_input.strip() == target.strip():
			return SubmitOutcome(
				feedback=Feedback(kind=FeedbackKind.SUCCESS, message=f"Perfect! Speed: {self.wpm} WPM"),
				points=TYPING_POINTS,
				advance_after_ms=self._typing_advance_ms,
			)
		# Length heuristic, not a diff: only flag an error once the input is as long as the target
		if len(raw_input) < len(target):
			return SubmitOutcome(feedback=Feedback(kind=FeedbackKind.NEUTRAL, message=TYPING_PENDING_MSG))
		return SubmitOutcome(feedback=Feedback(kind=FeedbackKind.ERROR, message=TYPING_WRONG_MSG))

	def advance(self) -> bool:
		"""Move past the current question. Returns True when the lesson is complete."""
		self._require_in_progress()
		if self.is_last:
			self.final_score = self.score
			logger.debug("session %s complete with score %d", self.session_id, self.score)
			return True
		self.index += 1
		self.input = ""
		self.feedback = NO_FEEDBACK
		self.wpm = 0
		self._typing_started_at = None
		return False

	def view(self) -> SessionView:
		question = None if self.complete else QuestionView.from_question(self.current_question)
		return SessionView(
			session_id=self.session_id,
			lesson_title=self.lesson.title,
			lesson_description=self.lesson.description,
			question=question,
			progress_current=self.index + 1,
			progress_total=self.total,
			input=self.input,
			feedback=self.feedback,
			score=self.score,
			wpm=self.wpm,
			complete=self.complete,
			final_score=self.final_score,
		)
