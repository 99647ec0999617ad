from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import BadRequestError
from ..models import AuthUser, AuthSession, utcnow
from ..schemas import CamelModel, Envelope, envelope
from ..settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

_RESET_TOKEN_TYPE = "reset"


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	uid: str
	email: str
	is_admin: bool = False


def _as_user(row: AuthUser) -> User:
	return User(uid=row.uid, email=row.email, is_admin=row.is_admin)


def user_payload(row: AuthUser) -> dict:
	return {"uid": row.uid, "email": row.email, "isAdmin": row.is_admin}


def normalize_email(email: str) -> str:
	return (email or "").strip().lower()


def hash_password(password: str) -> str:
	# Truncate password to 72 bytes for bcrypt compatibility
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
	if not hashed_password:
		return False
	password_bytes = plain_password.encode('utf-8')[:72]
	return pwd_context.verify(password_bytes.decode('utf-8', errors='ignore'), hashed_password)


def authenticate_user(db: Session, email: str, password: str) -> Optional[AuthUser]:
	row = db.query(AuthUser).filter(AuthUser.email == normalize_email(email)).first()
	if row and verify_password(password, row.password_hash):
		return row
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.setdefault("exp", _resolve_expiry(expires_delta))
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def issue_session_token(db: Session, row: AuthUser) -> str:
	"""Create a session row and the bearer token bound to it."""
	session_id = uuid.uuid4().hex
	expire = _resolve_expiry(None)
	db.add(AuthSession(session_id=session_id, user_uid=row.uid, expires_at=expire))
	db.commit()
	return create_access_token({"sub": row.uid, "email": row.email, "jti": session_id, "exp": expire})


def revoke_sessions(db: Session, user_uid: str) -> int:
	return db.query(AuthSession).filter(AuthSession.user_uid == user_uid).delete(synchronize_session=False)


def create_password_reset_link(row: AuthUser) -> str:
	expire = datetime.now(timezone.utc) + timedelta(minutes=settings.password_reset_expire_minutes)
	token = create_access_token(
		{"sub": row.uid, "typ": _RESET_TOKEN_TYPE, "pwv": row.password_version, "exp": expire}
	)
	base = settings.public_base_url.rstrip("/")
	return f"{base}/reset-password?{urlencode({'token': token})}"


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	row = authenticate_user(db, form_data.username, form_data.password)
	if not row:
		raise HTTPException(status_code=401, detail="Incorrect email or password")
	logger.info("Issued session for %s", row.email)
	return Token(access_token=issue_session_token(db, row))


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Unauthorized")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		uid: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if uid is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist: removing it (logout, password reset, user removal) revokes the token
	try:
		session_row = db.get(AuthSession, jti)
		if not session_row or session_row.user_uid != uid:
			raise credentials_exception
		row = db.get(AuthUser, uid)
		if row is None:
			raise credentials_exception
		session_row.last_activity_at = utcnow()
		db.add(session_row)
		db.commit()
	except HTTPException:
		raise
	except Exception:
		# On DB errors, fail closed
		logger.exception("Session lookup failed")
		raise credentials_exception
	return _as_user(row)


def require_admin(user: User = Depends(get_current_user)) -> User:
	if not user.is_admin:
		raise HTTPException(status_code=403, detail="Admin privileges required")
	return user


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
	return {"uid": user.uid, "email": user.email, "isAdmin": user.is_admin}


class CompleteResetInput(CamelModel):
	token: str
	password: str = Field(min_length=6, max_length=256)


@router.post("/complete-password-reset")
async def complete_password_reset(req: Envelope[CompleteResetInput], db: Session = Depends(get_db)):
	invalid = BadRequestError("Invalid or expired reset link")
	try:
		payload = jwt.decode(req.data.token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise invalid
	if payload.get("typ") != _RESET_TOKEN_TYPE:
		raise invalid
	row = db.get(AuthUser, payload.get("sub"))
	if row is None or payload.get("pwv") != row.password_version:
		raise invalid
	row.password_hash = hash_password(req.data.password)
	row.password_version += 1
	revoke_sessions(db, row.uid)
	db.commit()
	logger.info("Password reset completed for %s", row.email)
	return envelope({"email": row.email})


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	jti = jwt.get_unverified_claims(token).get("jti")
	db.query(AuthSession).filter(AuthSession.session_id == jti).delete(synchronize_session=False)
	db.commit()
	return envelope({"ok": True})


def ensure_seed_admin(db: Session) -> None:
	email = normalize_email(settings.seed_admin_email or "")
	password = settings.seed_admin_password
	if not email or not password:
		return
	row = db.query(AuthUser).filter(AuthUser.email == email).first()
	if row is None:
		db.add(AuthUser(email=email, password_hash=hash_password(password), is_admin=True))
		db.commit()
		logger.info("Seeded admin user %s", email)
	elif not row.is_admin:
		row.is_admin = True
		db.commit()
