from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .errors import ConflictError, ForbiddenError, NotFoundError
from .models import Assessment, StudentResponse, utcnow

MC = "mc"
AUDIO = "audio"


def _iso(value: Optional[datetime]) -> Optional[str]:
	if value is None:
		return None
	# SQLite hands back naive datetimes; they were stored as UTC
	if value.tzinfo is None:
		value = value.replace(tzinfo=timezone.utc)
	return value.isoformat().replace("+00:00", "Z")


def age_from_birth_date(birth_date: str, today: Optional[date] = None) -> Optional[int]:
	"""Whole years between a ``YYYY-MM`` birth month and ``today``."""
	try:
		year, month = (int(part) for part in birth_date.split("-", 1))
	except (AttributeError, ValueError):
		return None
	today = today or date.today()
	age = today.year - year
	if today.month < month:
		age -= 1
	return max(age, 0)


def serialize_assessment(row: Assessment) -> Dict[str, Any]:
	return {
		"id": row.id,
		"name": row.name,
		"birthDate": row.birth_date,
		"age": age_from_birth_date(row.birth_date),
		"gender": row.gender,
		"grade": row.grade,
		"school": row.school,
		"motherTongue": row.mother_tongue,
		"otherLanguages": row.other_languages or [],
		"creatorEmail": row.creator_email,
		"currentSection": row.current_section,
		"currentQuestion": row.current_question,
		"finished": row.finished,
		"createdAtIsoTimestamp": _iso(row.created_at),
		"updatedAtIsoTimestamp": _iso(row.updated_at),
		"finishedAtIsoTimestamp": _iso(row.finished_at),
	}


def get_assessment(db: Session, assessment_id: str) -> Assessment:
	row = db.get(Assessment, assessment_id)
	if row is None:
		raise NotFoundError("Assessment not found")
	return row


def get_owned_assessment(db: Session, assessment_id: str, caller_email: str, *, admin_ok: bool = False) -> Assessment:
	"""Load an assessment the caller created; admins pass when ``admin_ok`` is set."""
	row = get_assessment(db, assessment_id)
	if row.creator_email != caller_email and not admin_ok:
		raise ForbiddenError("Unauthorized")
	return row


def find_student_response(db: Session, assessment_id: str, section: int) -> Optional[StudentResponse]:
	return (
		db.query(StudentResponse)
		.filter(StudentResponse.assessment_id == assessment_id)
		.filter(StudentResponse.section == section)
		.order_by(StudentResponse.created_at)
		.first()
	)


def find_or_create_student_response(db: Session, assessment_id: str, section: int, kind: str) -> StudentResponse:
	# Not a unique-constraint upsert: two concurrent first answers in a section
	# can both miss here and insert two records.
	row = find_student_response(db, assessment_id, section)
	if row is None:
		row = StudentResponse(assessment_id=assessment_id, section=section, type=kind)
		if kind == MC:
			row.student_responses = {}
		else:
			row.files = {}
			row.transcripts = {}
		db.add(row)
		db.flush()
	elif row.type != kind:
		raise ConflictError(f"Section {section} holds {row.type} responses")
	return row


def _with(mapping: Optional[Dict[str, Any]], key: int, value: Any) -> Dict[str, Any]:
	# JSON columns only persist on reassignment
	updated = dict(mapping or {})
	updated[str(key)] = value
	return updated


def record_mc_answer(row: StudentResponse, question: int, answer: int) -> None:
	row.student_responses = _with(row.student_responses, question, answer)
	row.updated_at = utcnow()


def record_audio_answer(row: StudentResponse, question: int, file_uri: str, transcript: str) -> None:
	row.files = _with(row.files, question, file_uri)
	row.transcripts = _with(row.transcripts, question, transcript)
	row.updated_at = utcnow()


def record_grade(row: StudentResponse, question: int, grade: int) -> None:
	row.grades = _with(row.grades, question, grade)
	row.updated_at = utcnow()


def advance_cursor(assessment: Assessment, section: int, question: int) -> None:
	"""Point the progress cursor at the question after the one just answered."""
	assessment.current_section = section
	assessment.current_question = question + 1
	assessment.updated_at = utcnow()


def mark_finished(assessment: Assessment) -> None:
	if assessment.finished:
		return
	now = utcnow()
	assessment.finished = True
	assessment.finished_at = now
	assessment.updated_at = now
