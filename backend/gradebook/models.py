from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, Boolean, JSON, ForeignKey
from .db import Base


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def new_id() -> str:
	return uuid.uuid4().hex


class Assessment(Base):
	__tablename__ = "assessments"
	id = Column(String(32), primary_key=True, default=new_id)
	# Student identity, captured by the intake form
	name = Column(String(256), nullable=False)
	birth_date = Column(String(7), nullable=False)  # YYYY-MM
	gender = Column(String(16), nullable=True)
	grade = Column(String(64), nullable=False)
	school = Column(String(256), nullable=False)
	mother_tongue = Column(JSON, nullable=True)
	other_languages = Column(JSON, nullable=False, default=list)
	creator_email = Column(String(256), nullable=False, index=True)
	# Progress cursor
	current_section = Column(Integer, default=0, nullable=False)
	current_question = Column(Integer, default=0, nullable=False)
	finished = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	updated_at = Column(DateTime(timezone=True), nullable=True)
	finished_at = Column(DateTime(timezone=True), nullable=True)


class StudentResponse(Base):
	"""One record per (assessment, section).

	``type`` is either ``"mc"`` (``student_responses`` maps question index to the
	selected option) or ``"audio"`` (``files``, ``transcripts`` and ``grades``
	map question index to blob URI, transcript and 0-5 grade). JSON keys are
	question indices as strings.
	"""
	__tablename__ = "student_responses"
	id = Column(String(32), primary_key=True, default=new_id)
	assessment_id = Column(String(32), ForeignKey("assessments.id"), nullable=False, index=True)
	section = Column(Integer, nullable=False)
	type = Column(String(8), nullable=False)
	student_responses = Column(JSON, nullable=True)
	files = Column(JSON, nullable=True)
	transcripts = Column(JSON, nullable=True)
	grades = Column(JSON, nullable=True)
	created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	updated_at = Column(DateTime(timezone=True), nullable=True)


class AuthUser(Base):
	__tablename__ = "auth_users"
	uid = Column(String(32), primary_key=True, default=new_id)
	email = Column(String(256), unique=True, index=True, nullable=False)
	# None means the user has not set a password yet
	password_hash = Column(String(256), nullable=True)
	is_admin = Column(Boolean, default=False, nullable=False)
	# Bumped on every password change; reset links carry the version they were minted for
	password_version = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	user_uid = Column(String(32), ForeignKey("auth_users.uid"), nullable=False, index=True)
	created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	last_activity_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
	expires_at = Column(DateTime(timezone=True), nullable=False)
