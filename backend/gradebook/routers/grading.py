from __future__ import annotations
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.orm import Session

from ..blobstore import BlobStore, get_blob_store
from ..catalog import load_catalog, score_sections
from ..db import get_db
from ..errors import ConflictError, NotFoundError
from ..models import StudentResponse
from ..schemas import CamelModel, Envelope, NonEmptyStr, envelope
from ..store import AUDIO, MC, find_student_response, get_owned_assessment, record_grade, serialize_assessment
from .assessments import Index
from .auth import User, get_current_user

router = APIRouter(tags=["grading"])

logger = logging.getLogger(__name__)


class GetStudentResponsesInput(CamelModel):
	assessment_id: NonEmptyStr


class SubmitAudioGradeInput(CamelModel):
	assessment_id: NonEmptyStr
	section: Index
	question: Index
	grade: int = Field(ge=0, le=5)


def _signed_url(request: Request, store: BlobStore, uri: str) -> str:
	path = store.path_from_uri(uri)
	if path is None:
		logger.warning("Failed to sign %s: not a blob reference", uri)
		return ""
	if store.local_path(path) is None:
		logger.warning("Failed to sign %s: blob missing", uri)
		return ""
	url = request.url_for("read_blob", path=path)
	return str(url.include_query_params(token=store.sign(path)))


def _serialize_response(request: Request, store: BlobStore, row: StudentResponse) -> Dict[str, Any]:
	if row.type == MC:
		return {"type": MC, "studentResponses": row.student_responses or {}}
	files = {q: (_signed_url(request, store, uri) if uri else "") for q, uri in (row.files or {}).items()}
	return {
		"type": AUDIO,
		"files": files,
		"transcripts": row.transcripts or {},
		"grades": row.grades or {},
	}


async def _student_responses(request: Request, req: Envelope[GetStudentResponsesInput], user: User, db: Session):
	assessment = get_owned_assessment(db, req.data.assessment_id, user.email, admin_ok=user.is_admin)
	rows = (
		db.query(StudentResponse)
		.filter(StudentResponse.assessment_id == assessment.id)
		.order_by(StudentResponse.section, StudentResponse.created_at)
		.all()
	)
	store = get_blob_store()
	by_section: Dict[str, Dict[str, Any]] = {}
	for row in rows:
		# Duplicate records from a racing first answer: the earliest one wins, like lookups do
		by_section.setdefault(str(row.section), _serialize_response(request, store, row))

	payload: Dict[str, Any] = {
		"assessment": serialize_assessment(assessment),
		"studentResponsesBySection": by_section,
	}
	catalog = load_catalog()
	if catalog is not None:
		payload["scoresBySection"] = score_sections(catalog, rows)
	return envelope(payload)


@router.post("/get-assessment-student-responses")
async def get_assessment_student_responses(request: Request, req: Envelope[GetStudentResponsesInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return await _student_responses(request, req, user, db)


@router.post("/get-assessment-answers", include_in_schema=False)
async def get_assessment_answers(request: Request, req: Envelope[GetStudentResponsesInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return await _student_responses(request, req, user, db)


@router.post("/submit-audio-grade")
async def submit_audio_grade(req: Envelope[SubmitAudioGradeInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	data = req.data
	assessment = get_owned_assessment(db, data.assessment_id, user.email, admin_ok=user.is_admin)
	row = find_student_response(db, assessment.id, data.section)
	if row is None:
		raise NotFoundError(f"No responses for section {data.section}")
	if row.type != AUDIO:
		raise ConflictError(f"Section {data.section} holds {row.type} responses")
	record_grade(row, data.question, data.grade)
	db.commit()
	logger.info("Graded assessment %s, section %s, question %s: %s/5", assessment.id, data.section, data.question, data.grade)
	return envelope({"ok": True})
