from __future__ import annotations
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ConflictError, NotFoundError
from ..models import Assessment, AuthUser
from ..schemas import CamelModel, Email, Envelope, envelope
from ..store import serialize_assessment
from .auth import User, create_password_reset_link, require_admin, revoke_sessions, user_payload

router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)


class UserEmailInput(CamelModel):
	email: Email


def _get_user(db: Session, email: str) -> AuthUser:
	row = db.query(AuthUser).filter(AuthUser.email == email).first()
	if row is None:
		raise NotFoundError(f"User {email} not found")
	return row


@router.post("/get-assessments")
async def admin_get_assessments(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	rows = db.query(Assessment).order_by(Assessment.created_at.desc()).all()
	return envelope({"assessments": [serialize_assessment(row) for row in rows]})


@router.post("/get-users")
async def admin_get_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	rows = db.query(AuthUser).order_by(AuthUser.email).all()
	return envelope({"users": [user_payload(row) for row in rows]})


@router.post("/create-user", status_code=201)
async def admin_create_user(req: Envelope[UserEmailInput], admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	email = req.data.email
	if db.query(AuthUser).filter(AuthUser.email == email).first() is not None:
		raise ConflictError(f"User {email} already exists")
	# No password until the user follows the reset link
	row = AuthUser(email=email, password_hash=None, is_admin=False)
	db.add(row)
	db.commit()
	logger.info("Admin %s created user %s", admin.email, email)
	return envelope({"uid": row.uid, "email": row.email, "resetLink": create_password_reset_link(row)})


@router.post("/reset-password")
async def admin_reset_password(req: Envelope[UserEmailInput], admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_user(db, req.data.email)
	logger.info("Admin %s generated a reset link for %s", admin.email, row.email)
	return envelope({"email": row.email, "resetLink": create_password_reset_link(row)})


@router.post("/remove-user")
async def admin_remove_user(req: Envelope[UserEmailInput], admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	row = _get_user(db, req.data.email)
	revoke_sessions(db, row.uid)
	db.delete(row)
	db.commit()
	logger.info("Admin %s removed user %s", admin.email, req.data.email)
	return envelope({"email": req.data.email})
