from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..engine import ActivityError
from ..models import Feedback, ShellSnapshot, Subject
from ..shell import AcademyShell, LessonUnavailable, ShellError
from .auth import get_current_shell

router = APIRouter(prefix="/activity", tags=["activity"])


class StartRequest(BaseModel):
	subject: Subject


class SelectRequest(BaseModel):
	option: str


class KeystrokeRequest(BaseModel):
	text: str


class SubmitRequest(BaseModel):
	# Omitted text submits whatever is already in the input buffer
	text: Optional[str] = None


class SubmitResponse(BaseModel):
	feedback: Feedback
	points: int
	advance_after_ms: Optional[int] = None
	state: ShellSnapshot


class KeystrokeResponse(BaseModel):
	wpm: int
	state: ShellSnapshot


class AdvanceResponse(BaseModel):
	complete: bool
	state: ShellSnapshot


def _conflict(e: Exception) -> HTTPException:
	return HTTPException(status_code=409, detail=str(e))


@router.post("/start", response_model=ShellSnapshot)
async def start(req: StartRequest, shell: AcademyShell = Depends(get_current_shell)):
	try:
		await shell.start_lesson(req.subject)
	except LessonUnavailable as e:
		raise HTTPException(status_code=502, detail=str(e))
	except ShellError as e:
		raise _conflict(e)
	return shell.snapshot()


@router.get("", response_model=ShellSnapshot)
async def state(shell: AcademyShell = Depends(get_current_shell)):
	return shell.snapshot()


@router.post("/select", response_model=ShellSnapshot)
async def select(req: SelectRequest, shell: AcademyShell = Depends(get_current_shell)):
	try:
		shell.select_option(req.option)
	except (ShellError, ActivityError) as e:
		raise _conflict(e)
	return shell.snapshot()


@router.post("/keystroke", response_model=KeystrokeResponse)
async def keystroke(req: KeystrokeRequest, shell: AcademyShell = Depends(get_current_shell)):
	try:
		wpm = shell.keystroke(req.text)
	except (ShellError, ActivityError) as e:
		raise _conflict(e)
	return KeystrokeResponse(wpm=wpm, state=shell.snapshot())


@router.post("/submit", response_model=SubmitResponse)
async def submit(req: SubmitRequest, shell: AcademyShell = Depends(get_current_shell)):
	try:
		outcome = shell.submit(req.text)
	except (ShellError, ActivityError) as e:
		raise _conflict(e)
	return SubmitResponse(
		feedback=outcome.feedback,
		points=outcome.points,
		advance_after_ms=outcome.advance_after_ms,
		state=shell.snapshot(),
	)


@router.post("/advance", response_model=AdvanceResponse)
async def advance(shell: AcademyShell = Depends(get_current_shell)):
	try:
		complete = shell.advance()
	except (ShellError, ActivityError) as e:
		raise _conflict(e)
	return AdvanceResponse(complete=complete, state=shell.snapshot())


@router.post("/exit", response_model=ShellSnapshot)
async def exit_lesson(shell: AcademyShell = Depends(get_current_shell)):
	try:
		shell.exit_lesson()
	except ShellError as e:
		raise _conflict(e)
	return shell.snapshot()
