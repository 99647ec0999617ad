from __future__ import annotations
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession, utcnow


def purge_expired_sessions(db: Session) -> int:
	"""Delete session rows whose bearer token has expired."""
	res = db.execute(delete(AuthSession).where(AuthSession.expires_at < utcnow()))
	db.commit()
	return res.rowcount or 0
