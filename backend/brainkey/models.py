from __future__ import annotations
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


MIN_GRADE = 1
MAX_GRADE = 10


class Subject(str, Enum):
	MATH = "Math"
	ENGLISH = "English Grammar"
	AI_TECH = "AI & Technology"
	COMPUTER = "Computer Science"


class ViewState(str, Enum):
	LANDING = "LANDING"
	LOGIN = "LOGIN"
	DASHBOARD = "DASHBOARD"
	ACTIVITY = "ACTIVITY"


class FeedbackKind(str, Enum):
	NONE = "none"
	NEUTRAL = "neutral"
	SUCCESS = "success"
	ERROR = "error"


class Feedback(BaseModel):
	model_config = ConfigDict(frozen=True)

	kind: FeedbackKind = FeedbackKind.NONE
	message: str = ""


NO_FEEDBACK = Feedback()


class _QuestionBase(BaseModel):
	# Accept the camelCase keys the generator emits as well as snake_case
	model_config = ConfigDict(frozen=True, populate_by_name=True)

	id: str
	prompt: str


class QuizQuestion(_QuestionBase):
	type: Literal["quiz"] = "quiz"
	options: List[str]
	correct_answer: str = Field(alias="correctAnswer")

	@model_validator(mode="after")
	def _check_options(self) -> "QuizQuestion":
		if len(self.options) < 2:
			raise ValueError("a quiz question needs at least two options")
		if len(set(self.options)) != len(self.options):
			raise ValueError("quiz options must be distinct")
		if self.correct_answer not in self.options:
			raise ValueError("correctAnswer must match one of the options exactly")
		return self


class TypingQuestion(_QuestionBase):
	type: Literal["typing"] = "typing"
	typing_text: str = Field(alias="typingText")

	@field_validator("typing_text")
	@classmethod
	def _not_blank(cls, value: str) -> str:
		if not value.strip():
			raise ValueError("typingText must not be blank")
		return value


Question = Annotated[Union[QuizQuestion, TypingQuestion], Field(discriminator="type")]


class Lesson(BaseModel):
	model_config = ConfigDict(frozen=True)

	title: str
	description: str = ""
	questions: List[Question] = Field(min_length=1)

	@model_validator(mode="after")
	def _unique_ids(self) -> "Lesson":
		ids = [q.id for q in self.questions]
		if len(set(ids)) != len(ids):
			raise ValueError("question ids must be unique within a lesson")
		return self


class UserProfile(BaseModel):
	username: str
	grade_level: int = Field(ge=MIN_GRADE, le=MAX_GRADE)
	stars: int = Field(default=0, ge=0)


class QuestionView(BaseModel):
	"""What the student sees of a question; the answer key stays server side."""

	id: str
	type: Literal["quiz", "typing"]
	prompt: str
	options: Optional[List[str]] = None
	typing_text: Optional[str] = None

	@classmethod
	def from_question(cls, question: Union[QuizQuestion, TypingQuestion]) -> "QuestionView":
		if isinstance(question, QuizQuestion):
			return cls(id=question.id, type="quiz", prompt=question.prompt, options=list(question.options))
		return cls(id=question.id, type="typing", prompt=question.prompt, typing_text=question.typing_text)


class SessionView(BaseModel):
	session_id: str
	lesson_title: str
	lesson_description: str
	question: Optional[QuestionView] = None
	progress_current: int
	progress_total: int
	input: str
	feedback: Feedback
	score: int
	wpm: int
	complete: bool
	final_score: Optional[int] = None


class ShellSnapshot(BaseModel):
	view: ViewState
	profile: Optional[UserProfile] = None
	selected_level: int
	loading: bool
	subject: Optional[Subject] = None
	session: Optional[SessionView] = None
	last_score: Optional[int] = None
