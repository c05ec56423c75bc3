"""Per-student presentation shell.

Owns the view switch (landing / login / dashboard / activity), the logged-in
profile, the single in-flight lesson fetch and the auto-advance timer of the
current ``ActivitySession``. Routers hold one shell per login.
"""

from __future__ import annotations
import logging
import time
from typing import Callable, Optional, Protocol

from .engine import ActivitySession, SubmitOutcome
from .models import MAX_GRADE, MIN_GRADE, Lesson, ShellSnapshot, Subject, UserProfile, ViewState
from .scheduler import AdvanceScheduler
from .settings import settings

logger = logging.getLogger(__name__)


class LessonProvider(Protocol):
	async def generate_lesson(self, grade: int, subject: Subject) -> Lesson: ...


class ShellError(Exception):
	pass


class InvalidInput(ShellError, ValueError):
	pass


class InvalidTransition(ShellError):
	pass


class LessonAlreadyLoading(ShellError):
	pass


class LessonUnavailable(ShellError):
	pass


class LessonSuperseded(ShellError):
	pass


class AdvanceNotAllowed(ShellError):
	pass


def _check_level(level: int) -> int:
	if not MIN_GRADE <= level <= MAX_GRADE:
		raise InvalidInput(f"grade level must be between {MIN_GRADE} and {MAX_GRADE}")
	return level


class AcademyShell:
	def __init__(
		self,
		provider: LessonProvider,
		scheduler: AdvanceScheduler,
		*,
		quiz_advance_ms: Optional[int] = None,
		typing_advance_ms: Optional[int] = None,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self._provider = provider
		self._scheduler = scheduler
		self._quiz_advance_ms = settings.quiz_advance_delay_ms if quiz_advance_ms is None else quiz_advance_ms
		self._typing_advance_ms = settings.typing_advance_delay_ms if typing_advance_ms is None else typing_advance_ms
		self._clock = clock
		self.view: ViewState = ViewState.LANDING
		self.profile: Optional[UserProfile] = None
		self.selected_level: int = MIN_GRADE
		self.subject: Optional[Subject] = None
		self.loading: bool = False
		self.session: Optional[ActivitySession] = None
		self.last_score: Optional[int] = None
		# Bumped whenever an in-flight fetch stops being wanted
		self._fetch_generation: int = 0

	# -- navigation -------------------------------------------------------

	def _require_view(self, *views: ViewState) -> None:
		if self.view not in views:
			expected = "/".join(v.value for v in views)
			raise InvalidTransition(f"not allowed from {self.view.value} (expected {expected})")

	def open_login(self) -> None:
		self._require_view(ViewState.LANDING)
		self.view = ViewState.LOGIN

	def back_to_landing(self) -> None:
		self._require_view(ViewState.LOGIN)
		self.view = ViewState.LANDING

	def login(self, username: str, grade: int) -> UserProfile:
		self._require_view(ViewState.LOGIN)
		name = (username or "").strip()
		if not name:
			raise InvalidInput("username is required")
		self.profile = UserProfile(username=name, grade_level=_check_level(grade), stars=0)
		self.selected_level = grade
		self.last_score = None
		self.view = ViewState.DASHBOARD
		logger.info("student %s logged in at grade %d", name, grade)
		return self.profile

	def logout(self) -> None:
		self._discard_activity()
		if self.profile is not None:
			logger.info("student %s logged out with %d stars", self.profile.username, self.profile.stars)
		self.profile = None
		self.last_score = None
		self.selected_level = MIN_GRADE
		self.view = ViewState.LANDING

	def select_level(self, level: int) -> int:
		self._require_view(ViewState.DASHBOARD)
		self.selected_level = _check_level(level)
		return self.selected_level

	# -- lesson lifecycle -------------------------------------------------

	async def start_lesson(self, subject: Subject) -> ActivitySession:
		if self.profile is None:
			raise InvalidTransition("log in before starting a lesson")
		if self.loading:
			raise LessonAlreadyLoading("a lesson is already loading")
		self._require_view(ViewState.DASHBOARD, ViewState.ACTIVITY)
		self._discard_activity()
		self._fetch_generation += 1
		generation = self._fetch_generation
		self.subject = subject
		self.view = ViewState.ACTIVITY
		self.loading = True
		grade = self.selected_level
		try:
			lesson = await self._provider.generate_lesson(grade, subject)
		except Exception as e:
			if generation != self._fetch_generation:
				raise LessonSuperseded("lesson request was superseded") from e
			self.loading = False
			self.subject = None
			self.view = ViewState.DASHBOARD
			logger.warning("failed to load %s lesson for grade %d: %s", subject.value, grade, e)
			raise LessonUnavailable("Failed to load lesson. Please try again.") from e
		if generation != self._fetch_generation:
			logger.info("dropping late %s lesson; student moved on", subject.value)
			raise LessonSuperseded("lesson request was superseded")
		self.loading = False
		self.session = ActivitySession(
			lesson,
			clock=self._clock,
			quiz_advance_ms=self._quiz_advance_ms,
			typing_advance_ms=self._typing_advance_ms,
		)
		logger.info(
			"started session %s: %r (%d questions)", self.session.session_id, lesson.title, len(lesson.questions)
		)
		return self.session

	def exit_lesson(self) -> None:
		self._require_view(ViewState.ACTIVITY)
		self._discard_activity()
		self.view = ViewState.DASHBOARD

	def _discard_activity(self) -> None:
		self._fetch_generation += 1
		self.loading = False
		self.subject = None
		if self.session is not None:
			self._scheduler.cancel(self.session.session_id)
			self.session = None

	def _require_session(self) -> ActivitySession:
		if self.view is not ViewState.ACTIVITY or self.session is None:
			raise InvalidTransition("no lesson in progress")
		return self.session

	# -- events relayed into the session ----------------------------------

	def select_option(self, option: str) -> None:
		self._require_session().select_option(option)

	def keystroke(self, text: str) -> int:
		return self._require_session().record_keystroke(text)

	def submit(self, text: Optional[str] = None) -> SubmitOutcome:
		session = self._require_session()
		if text is None:
			text = session.input
		elif text != session.input and session.current_question.type == "typing":
			session.record_keystroke(text)
		outcome = session.submit_input(text)
		if outcome.advance_after_ms is not None:
			session_id = session.session_id
			self._scheduler.schedule(session_id, outcome.advance_after_ms, lambda: self._auto_advance(session_id))
		return outcome

	def advance(self) -> bool:
		session = self._require_session()
		if not session.awaiting_advance:
			raise AdvanceNotAllowed("answer the current question first")
		return self._advance(session)

	def _auto_advance(self, session_id: str) -> None:
		session = self.session
		if session is None or session.session_id != session_id or not session.awaiting_advance:
			logger.debug("ignoring stale advance for session %s", session_id)
			return
		self._advance(session)

	def _advance(self, session: ActivitySession) -> bool:
		self._scheduler.cancel(session.session_id)
		if not session.advance():
			return False
		self._complete(session)
		return True

	def _complete(self, session: ActivitySession) -> None:
		score = session.final_score or 0
		if self.profile is not None:
			self.profile.stars += score
		self.last_score = score
		self.session = None
		self.subject = None
		self.view = ViewState.DASHBOARD
		logger.info("session %s complete: +%d stars", session.session_id, score)

	def snapshot(self) -> ShellSnapshot:
		return ShellSnapshot(
			view=self.view,
			profile=self.profile.model_copy() if self.profile is not None else None,
			selected_level=self.selected_level,
			loading=self.loading,
			subject=self.subject,
			session=self.session.view() if self.session is not None else None,
			last_score=self.last_score,
		)
