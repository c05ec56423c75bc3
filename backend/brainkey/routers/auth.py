from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from ..lesson_provider import get_lesson_provider
from ..models import MAX_GRADE, MIN_GRADE, UserProfile
from ..scheduler import advance_scheduler
from ..settings import settings
from ..shell import AcademyShell, InvalidInput, LessonProvider

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class LoginRequest(BaseModel):
	username: str
	grade: int = Field(ge=MIN_GRADE, le=MAX_GRADE)


# One shell per login, keyed by the token's jti, held until logout or token expiry
_shells: Dict[str, Tuple[AcademyShell, datetime]] = {}


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=1)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(
	data: dict,
	expires_delta: Optional[timedelta] = None,
	*,
	expires_at: Optional[datetime] = None,
) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": expires_at or _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> Tuple[str, str]:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: str | None = payload.get("sub")
	jti: str | None = payload.get("jti")
	if username is None or jti is None:
		raise credentials_exception
	return username, jti


def _prune_expired(now: Optional[datetime] = None) -> int:
	now = now or datetime.now(timezone.utc)
	expired = [jti for jti, (_, expires_at) in _shells.items() if expires_at <= now]
	for jti in expired:
		shell, _ = _shells.pop(jti)
		# Cancels any pending auto-advance before the shell is dropped
		shell.logout()
	if expired:
		logger.info("dropped %d expired shells", len(expired))
	return len(expired)


def get_current_shell(token: str = Depends(oauth2_scheme)) -> AcademyShell:
	_prune_expired()
	_, jti = _decode_token(token)
	entry = _shells.get(jti)
	# Unknown jti means the student logged out, the token expired or the process restarted
	if entry is None or entry[0].profile is None:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return entry[0]


@router.post("/login", response_model=Token)
async def login(req: LoginRequest, provider: LessonProvider = Depends(get_lesson_provider)):
	_prune_expired()
	shell = AcademyShell(provider, advance_scheduler)
	shell.open_login()
	try:
		profile = shell.login(req.username, req.grade)
	except InvalidInput as e:
		raise HTTPException(status_code=400, detail=str(e))
	session_id = uuid.uuid4().hex
	expires_at = _resolve_expiry(None)
	_shells[session_id] = (shell, expires_at)
	return Token(access_token=create_access_token({"sub": profile.username, "jti": session_id}, expires_at=expires_at))


@router.get("/me", response_model=UserProfile)
async def me(shell: AcademyShell = Depends(get_current_shell)):
	return shell.profile


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme)):
	_prune_expired()
	_, jti = _decode_token(token)
	entry = _shells.pop(jti, None)
	if entry is None:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	entry[0].logout()
	return {"ok": True}


def reset_shells() -> None:
	for shell, _ in list(_shells.values()):
		shell.logout()
	_shells.clear()
