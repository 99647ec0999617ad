"""
Assessment-taking endpoints
===========================

The web client drives a student through an assessment section by section:

- POST /create-assessment: intake form, returns the new assessment id
- POST /get-assessments, /get-unfinished-assessments: the caller's assessments
- POST /upload-audio: store a recorded answer, returns its blob URI
- POST /submit-mc-answer, /submit-audio-answer: record one answer and move
  the progress cursor
- POST /finish-assessment: flag the assessment finished

Every payload is wrapped as ``{"data": ...}``. Answers live in one
``StudentResponse`` per (assessment, section), created on the first answer.
"""

from __future__ import annotations
import logging
from typing import Annotated, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import AliasChoices, Field, StringConstraints
from sqlalchemy.orm import Session

from ..blobstore import get_blob_store
from ..db import get_db
from ..errors import BadRequestError, ForbiddenError, PayloadTooLargeError
from ..models import Assessment
from ..schemas import CamelModel, Envelope, NonEmptyStr, envelope
from ..settings import settings
from ..store import (
	AUDIO,
	MC,
	advance_cursor,
	find_or_create_student_response,
	get_owned_assessment,
	mark_finished,
	record_audio_answer,
	record_mc_answer,
	serialize_assessment,
)
from ..transcription import transcribe
from .auth import User, get_current_user

router = APIRouter(tags=["assessments"])

logger = logging.getLogger(__name__)

Index = Annotated[int, Field(ge=0)]


# ============================================================================
# REQUEST MODELS
# ============================================================================

class LanguageEntry(CamelModel):
	language: Literal["cantonese", "mandarin", "english", "other"]
	other_specify: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=128)]] = None


class AssessmentInput(CamelModel):
	name: NonEmptyStr
	birth_date: str = Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
	gender: Optional[Literal["male", "female"]] = None
	grade: NonEmptyStr
	school: NonEmptyStr
	mother_tongue: Optional[LanguageEntry] = None
	other_languages: List[LanguageEntry] = Field(default_factory=list)


class GetAssessmentsInput(CamelModel):
	finished: bool = False


class MCAnswerInput(CamelModel):
	assessment_id: NonEmptyStr
	section: Index
	question: Index
	answer: Index


class AudioAnswerInput(CamelModel):
	assessment_id: NonEmptyStr
	section: Index
	question: Index
	transcript: str = ""
	# Older clients send the storage reference as gsUri
	file_uri: NonEmptyStr = Field(validation_alias=AliasChoices("fileUri", "gsUri", "file_uri"))


class FinishAssessmentInput(CamelModel):
	assessment_id: NonEmptyStr


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/create-assessment", status_code=201)
async def create_assessment(req: Envelope[AssessmentInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	data = req.data
	row = Assessment(
		name=data.name,
		birth_date=data.birth_date,
		gender=data.gender,
		grade=data.grade,
		school=data.school,
		mother_tongue=data.mother_tongue.model_dump(by_alias=True, exclude_none=True) if data.mother_tongue else None,
		other_languages=[entry.model_dump(by_alias=True, exclude_none=True) for entry in data.other_languages],
		creator_email=user.email,
		current_section=0,
		current_question=0,
		finished=False,
	)
	db.add(row)
	db.commit()
	logger.info("Created assessment %s for %s", row.id, user.email)
	return envelope({"id": row.id})


def _list_assessments(db: Session, creator_email: str, finished: bool) -> list:
	rows = (
		db.query(Assessment)
		.filter(Assessment.creator_email == creator_email)
		.filter(Assessment.finished == finished)
		.order_by(Assessment.created_at.desc())
		.all()
	)
	return [serialize_assessment(row) for row in rows]


@router.post("/get-assessments")
async def get_assessments(req: Envelope[GetAssessmentsInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return envelope({"assessments": _list_assessments(db, user.email, req.data.finished)})


@router.post("/get-unfinished-assessments")
async def get_unfinished_assessments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return envelope({"assessments": _list_assessments(db, user.email, False)})


@router.post("/submit-mc-answer")
async def submit_mc_answer(req: Envelope[MCAnswerInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	data = req.data
	assessment = get_owned_assessment(db, data.assessment_id, user.email)
	row = find_or_create_student_response(db, assessment.id, data.section, MC)
	record_mc_answer(row, data.question, data.answer)
	# Separate writes, no transaction spanning both records
	db.commit()
	advance_cursor(assessment, data.section, data.question)
	db.commit()
	return envelope({"ok": True})


@router.post("/submit-audio-answer")
async def submit_audio_answer(req: Envelope[AudioAnswerInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	data = req.data
	assessment = get_owned_assessment(db, data.assessment_id, user.email)
	# Recordings are uploaded under <assessment id>/; a reference elsewhere belongs to someone else
	path = get_blob_store().stored_path(data.file_uri)
	if path is None:
		raise BadRequestError(f"Unsupported file reference: {data.file_uri}")
	if not path.startswith(f"{assessment.id}/"):
		raise ForbiddenError("Recording belongs to another assessment")
	row = find_or_create_student_response(db, assessment.id, data.section, AUDIO)
	record_audio_answer(row, data.question, data.file_uri, data.transcript)
	db.commit()
	advance_cursor(assessment, data.section, data.question)
	db.commit()
	return envelope({"ok": True})


def _extension(filename: Optional[str]) -> str:
	if filename and "." in filename:
		ext = filename.rsplit(".", 1)[1].lower()
		if ext.isalnum():
			return ext
	return "webm"


@router.post("/upload-audio")
async def upload_audio(
	assessment_id: Annotated[str, Form(alias="assessmentId", min_length=1)],
	section: Annotated[int, Form(ge=0)],
	question: Annotated[int, Form(ge=0)],
	audio: Annotated[UploadFile, File()],
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	content_type = audio.content_type or ""
	if not content_type.startswith("audio/"):
		raise BadRequestError("Only audio files are allowed")
	assessment = get_owned_assessment(db, assessment_id.strip(), user.email)

	limit = settings.max_audio_upload_bytes
	content = await audio.read(limit + 1)
	if len(content) > limit:
		raise PayloadTooLargeError(f"Audio file exceeds {limit} bytes")
	if not content:
		raise BadRequestError("No audio file provided")

	path = f"{assessment.id}/{section}/{question}.{_extension(audio.filename)}"
	file_uri = get_blob_store().save(path, content)
	transcript = await run_in_threadpool(transcribe, content, content_type)
	return envelope({"fileUri": file_uri, "transcript": transcript})


@router.post("/finish-assessment")
async def finish_assessment(req: Envelope[FinishAssessmentInput], user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	assessment = get_owned_assessment(db, req.data.assessment_id, user.email)
	mark_finished(assessment)
	db.commit()
	logger.info("Finished assessment %s", assessment.id)
	return envelope({"ok": True})
