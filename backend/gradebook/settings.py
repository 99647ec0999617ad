import json

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Auth configuration (bearer JWTs backed by server-side session rows)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	password_reset_expire_minutes: int = Field(default=60 * 24, validation_alias="PASSWORD_RESET_EXPIRE_MINUTES")
	# Base URL of the web client, used to build password reset links
	public_base_url: str = Field(default="http://localhost:8000/app", validation_alias="PUBLIC_BASE_URL")
	# Seed admin, created at startup when missing
	seed_admin_email: str | None = Field(default=None, validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str | None = Field(default=None, validation_alias="SEED_ADMIN_PASSWORD")

	# Blob storage for recorded answers
	blob_dir: str = Field(default="./blobs", validation_alias="BLOB_DIR")
	blob_bucket: str = Field(default="gradebook-audio", validation_alias="BLOB_BUCKET")
	signed_url_ttl_seconds: int = Field(default=60, validation_alias="SIGNED_URL_TTL_SECONDS")
	max_audio_upload_bytes: int = Field(default=10 * 1024 * 1024, validation_alias="MAX_AUDIO_UPLOAD_BYTES")

	# Optional server-side transcription via Google Cloud Speech-to-Text
	speech_transcription_enabled: bool = Field(default=False, validation_alias="SPEECH_TRANSCRIPTION_ENABLED")
	speech_language_code: str = Field(default="en-US", validation_alias="SPEECH_LANGUAGE_CODE")

	# Optional quiz catalog (JSON) used to score responses for graders
	quiz_catalog_path: str | None = Field(default=None, validation_alias="QUIZ_CATALOG_PATH")

	# Static web client, mounted at /app when the directory exists
	frontend_dir: str | None = Field(default=None, validation_alias="FRONTEND_DIR")
	# Comma-separated origins ("https://a.example,https://b.example"); a JSON list also works
	cors_origins: str = Field(default="*", validation_alias="CORS_ORIGINS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def cors_origin_list(self) -> list[str]:
		raw = self.cors_origins.strip()
		if raw.startswith("["):
			return [str(origin).strip() for origin in json.loads(raw)]
		return [origin.strip() for origin in raw.split(",") if origin.strip()]

settings = Settings()
