import json
from datetime import timedelta

import pytest

from gradebook import catalog
from gradebook.models import StudentResponse, utcnow
from gradebook.settings import settings

from conftest import create_assessment, upload_audio


def _responses(client, headers, assessment_id):
	return client.post("/get-assessment-student-responses", json={"data": {"assessmentId": assessment_id}}, headers=headers)


def _answer_audio(client, headers, assessment_id, section, question, content=b"recorded", transcript="my answer"):
	uploaded = upload_audio(client, headers, assessment_id, section, question, content)
	r = client.post(
		"/submit-audio-answer",
		json={"data": {"assessmentId": assessment_id, "section": section, "question": question, "transcript": transcript, "fileUri": uploaded["fileUri"]}},
		headers=headers,
	)
	assert r.status_code == 200, r.text


def _grade(client, headers, assessment_id, section, question, grade):
	return client.post(
		"/submit-audio-grade",
		json={"data": {"assessmentId": assessment_id, "section": section, "question": question, "grade": grade}},
		headers=headers,
	)


@pytest.fixture
def finished_assessment(client, teacher):
	assessment_id = create_assessment(client, teacher)
	client.post("/submit-mc-answer", json={"data": {"assessmentId": assessment_id, "section": 0, "question": 0, "answer": 1}}, headers=teacher)
	client.post("/submit-mc-answer", json={"data": {"assessmentId": assessment_id, "section": 0, "question": 1, "answer": 0}}, headers=teacher)
	_answer_audio(client, teacher, assessment_id, 1, 0, content=b"first-recording")
	client.post("/finish-assessment", json={"data": {"assessmentId": assessment_id}}, headers=teacher)
	return assessment_id


def test_student_responses_by_section(client, teacher, finished_assessment):
	r = _responses(client, teacher, finished_assessment)
	assert r.status_code == 200, r.text
	data = r.json()["data"]

	assert data["assessment"]["id"] == finished_assessment
	assert data["assessment"]["finished"] is True
	sections = data["studentResponsesBySection"]
	assert sections["0"] == {"type": "mc", "studentResponses": {"0": 1, "1": 0}}
	assert sections["1"]["type"] == "audio"
	assert sections["1"]["transcripts"] == {"0": "my answer"}
	assert sections["1"]["grades"] == {}
	assert "scoresBySection" not in data


def test_signed_url_serves_the_recording(client, teacher, finished_assessment):
	data = _responses(client, teacher, finished_assessment).json()["data"]
	url = data["studentResponsesBySection"]["1"]["files"]["0"]
	assert url.startswith("http://testserver/blobs/")
	assert "token=" in url

	r = client.get(url)
	assert r.status_code == 200
	assert r.content == b"first-recording"


def test_signed_url_is_bound_to_its_path(client, teacher, finished_assessment):
	url = _responses(client, teacher, finished_assessment).json()["data"]["studentResponsesBySection"]["1"]["files"]["0"]
	token = url.split("token=", 1)[1]

	assert client.get(f"/blobs/{finished_assessment}/1/9.webm?token={token}").status_code == 403
	assert client.get(url.split("?", 1)[0]).status_code == 403
	assert client.get(url + "x").status_code == 403


def test_non_creator_is_denied(client, other_teacher, finished_assessment):
	r = _responses(client, other_teacher, finished_assessment)
	assert r.status_code == 403
	assert _grade(client, other_teacher, finished_assessment, 1, 0, 3).status_code == 403


def test_unknown_assessment_is_404(client, teacher):
	assert _responses(client, teacher, "missing").status_code == 404
	assert _grade(client, teacher, "missing", 1, 0, 3).status_code == 404


def test_older_route_name(client, teacher, finished_assessment):
	r = client.post("/get-assessment-answers", json={"data": {"assessmentId": finished_assessment}}, headers=teacher)
	assert r.status_code == 200
	assert set(r.json()["data"]["studentResponsesBySection"]) == {"0", "1"}


def test_admin_can_review_any_assessment(client, admin, finished_assessment):
	assert _responses(client, admin, finished_assessment).status_code == 200
	assert _grade(client, admin, finished_assessment, 1, 0, 4).status_code == 200


def test_grade_is_written(client, teacher, finished_assessment):
	for grade in (0, 5):
		r = _grade(client, teacher, finished_assessment, 1, 0, grade)
		assert r.status_code == 200
		assert r.json() == {"data": {"ok": True}}
		sections = _responses(client, teacher, finished_assessment).json()["data"]["studentResponsesBySection"]
		assert sections["1"]["grades"] == {"0": grade}


@pytest.mark.parametrize("grade", [-1, 6, "abc"])
def test_out_of_range_grade_is_rejected(client, teacher, finished_assessment, grade):
	r = _grade(client, teacher, finished_assessment, 1, 0, grade)
	assert r.status_code == 400
	assert r.json()["error"] == "Invalid request"


def test_grade_needs_an_audio_section(client, teacher, finished_assessment):
	assert _grade(client, teacher, finished_assessment, 0, 0, 3).status_code == 409
	assert _grade(client, teacher, finished_assessment, 7, 0, 3).status_code == 404


def test_scores_from_quiz_catalog(client, teacher, finished_assessment, tmp_path, monkeypatch):
	path = tmp_path / "questions.json"
	path.write_text(json.dumps([
		{"kind": "mc", "title": "Vocabulary", "length": 3, "choices": [["cat", "dog"], ["red", "blue"], ["a", "b"]], "correctAnswers": ["dog", "blue", "a"]},
		{"kind": "audio", "title": "Speaking", "length": 2},
	]))
	monkeypatch.setattr(settings, "quiz_catalog_path", str(path))
	catalog._load.cache_clear()

	_grade(client, teacher, finished_assessment, 1, 0, 4)
	data = _responses(client, teacher, finished_assessment).json()["data"]
	assert data["scoresBySection"] == {
		"0": {"correct": 1, "total": 3},
		"1": {"numGraded": 1, "total": 2, "totalScore": 4},
	}


@pytest.mark.parametrize("content", [None, "{not json", '{"sections": 3}', '[{"kind": "essay"}]'])
def test_unusable_quiz_catalog_is_skipped(client, teacher, finished_assessment, tmp_path, monkeypatch, content):
	path = tmp_path / "questions.json"
	if content is not None:
		path.write_text(content)
	monkeypatch.setattr(settings, "quiz_catalog_path", str(path))
	catalog._load.cache_clear()

	r = _responses(client, teacher, finished_assessment)
	assert r.status_code == 200, r.text
	data = r.json()["data"]
	assert set(data["studentResponsesBySection"]) == {"0", "1"}
	assert "scoresBySection" not in data


def test_duplicate_section_records_use_the_earliest(client, teacher, db):
	assessment_id = create_assessment(client, teacher)
	now = utcnow()
	db.add_all([
		StudentResponse(assessment_id=assessment_id, section=1, type="audio", files={}, transcripts={"0": "later"}, created_at=now),
		StudentResponse(assessment_id=assessment_id, section=1, type="audio", files={}, transcripts={"0": "earlier"}, created_at=now - timedelta(minutes=1)),
	])
	db.commit()

	sections = _responses(client, teacher, assessment_id).json()["data"]["studentResponsesBySection"]
	assert list(sections) == ["1"]
	assert sections["1"]["transcripts"] == {"0": "earlier"}

	assert _grade(client, teacher, assessment_id, 1, 0, 2).status_code == 200
	db.expire_all()
	rows = db.query(StudentResponse).filter(StudentResponse.assessment_id == assessment_id).order_by(StudentResponse.created_at).all()
	assert [row.transcripts["0"] for row in rows] == ["earlier", "later"]
	assert rows[0].grades == {"0": 2}
	assert not rows[1].grades
