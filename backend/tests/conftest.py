import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="gradebook-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/gradebook.db"
os.environ["BLOB_DIR"] = os.path.join(_TMP, "blobs")
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["PUBLIC_BASE_URL"] = "http://testserver/app"
for _name in ("QUIZ_CATALOG_PATH", "SEED_ADMIN_EMAIL", "SEED_ADMIN_PASSWORD", "FRONTEND_DIR", "SPEECH_TRANSCRIPTION_ENABLED"):
	os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient

from gradebook.db import Base, SessionLocal, engine
from gradebook.main import app
from gradebook.models import AuthUser
from gradebook.routers import auth

# Cheap hashes keep the suite fast
auth.pwd_context.update(bcrypt__rounds=4)

PASSWORD = "correct-horse"


@pytest.fixture
def client():
	Base.metadata.drop_all(bind=engine)
	with TestClient(app) as c:
		yield c


@pytest.fixture
def db():
	session = SessionLocal()
	try:
		yield session
	finally:
		session.close()


def make_user(email: str, *, is_admin: bool = False, password: str = PASSWORD) -> None:
	session = SessionLocal()
	try:
		session.add(AuthUser(email=email, password_hash=auth.hash_password(password), is_admin=is_admin))
		session.commit()
	finally:
		session.close()


def login(client: TestClient, email: str, password: str = PASSWORD) -> dict:
	r = client.post("/auth/token", data={"username": email, "password": password})
	assert r.status_code == 200, r.text
	return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def teacher(client):
	make_user("teacher@example.com")
	return login(client, "teacher@example.com")


@pytest.fixture
def other_teacher(client):
	make_user("other@example.com")
	return login(client, "other@example.com")


@pytest.fixture
def admin(client):
	make_user("admin@example.com", is_admin=True)
	return login(client, "admin@example.com")


STUDENT = {
	"name": "  Chan Tai Man ",
	"birthDate": "2015-09",
	"gender": "male",
	"grade": "P3",
	"school": "Sunshine Primary",
	"motherTongue": {"language": "cantonese"},
	"otherLanguages": [{"language": "english"}, {"language": "other", "otherSpecify": "Tagalog"}],
}


def create_assessment(client: TestClient, headers: dict, **overrides) -> str:
	r = client.post("/create-assessment", json={"data": {**STUDENT, **overrides}}, headers=headers)
	assert r.status_code == 201, r.text
	return r.json()["data"]["id"]


def upload_audio(client: TestClient, headers: dict, assessment_id: str, section: int, question: int, content: bytes = b"webm-bytes") -> dict:
	r = client.post(
		"/upload-audio",
		data={"assessmentId": assessment_id, "section": str(section), "question": str(question)},
		files={"audio": ("answer.webm", content, "audio/webm")},
		headers=headers,
	)
	assert r.status_code == 200, r.text
	return r.json()["data"]
