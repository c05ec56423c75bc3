from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..models import MAX_GRADE, MIN_GRADE, ShellSnapshot, Subject
from ..shell import AcademyShell, InvalidTransition
from .auth import get_current_shell

router = APIRouter(tags=["dashboard"])


class LevelRequest(BaseModel):
	level: int = Field(ge=MIN_GRADE, le=MAX_GRADE)


@router.get("/subjects")
async def list_subjects():
	return {"subjects": [s.value for s in Subject]}


@router.get("/dashboard", response_model=ShellSnapshot)
async def dashboard(shell: AcademyShell = Depends(get_current_shell)):
	return shell.snapshot()


@router.post("/dashboard/level", response_model=ShellSnapshot)
async def select_level(req: LevelRequest, shell: AcademyShell = Depends(get_current_shell)):
	try:
		shell.select_level(req.level)
	except InvalidTransition as e:
		raise HTTPException(status_code=409, detail=str(e))
	return shell.snapshot()
