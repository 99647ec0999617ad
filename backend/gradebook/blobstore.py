"""Directory-backed blob bucket with JWT-signed, short-lived read links.

Stored references look like ``blob://<bucket>/<path>``. A signed read link
carries a token whose subject is the exact blob path; ``verify_token`` only
accepts it for that path and until it expires.
"""

from __future__ import annotations
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from jose import JWTError, jwt

from .settings import settings

logger = logging.getLogger(__name__)

_URI_RE = re.compile(r"^blob://([^/]+)/(.+)$")
_TOKEN_TYPE = "blob"


class BlobStore:
	def __init__(self, root: str | Path, bucket: str) -> None:
		self.root = Path(root).resolve()
		self.bucket = bucket

	def _resolve(self, path: str) -> Path:
		target = (self.root / path).resolve()
		if target != self.root and self.root not in target.parents:
			raise ValueError(f"Blob path escapes the bucket: {path}")
		return target

	def uri_for(self, path: str) -> str:
		return f"blob://{self.bucket}/{path}"

	def save(self, path: str, data: bytes) -> str:
		target = self._resolve(path)
		target.parent.mkdir(parents=True, exist_ok=True)
		target.write_bytes(data)
		logger.info("Stored blob %s (%d bytes)", path, len(data))
		return self.uri_for(path)

	def local_path(self, path: str) -> Optional[Path]:
		"""Filesystem path of a stored blob, or None when it does not exist."""
		try:
			target = self._resolve(path)
		except ValueError:
			return None
		return target if target.is_file() else None

	@staticmethod
	def path_from_uri(uri: str) -> Optional[str]:
		match = _URI_RE.match(uri or "")
		return match.group(2) if match else None

	def stored_path(self, uri: str) -> Optional[str]:
		"""Blob path of a reference into this bucket that exists, else None."""
		match = _URI_RE.match(uri or "")
		if not match or match.group(1) != self.bucket:
			return None
		path = match.group(2)
		return path if self.local_path(path) is not None else None

	def sign(self, path: str, ttl_seconds: int | None = None) -> str:
		ttl = settings.signed_url_ttl_seconds if ttl_seconds is None else ttl_seconds
		expire = datetime.now(timezone.utc) + timedelta(seconds=ttl)
		claims = {"sub": path, "typ": _TOKEN_TYPE, "exp": expire}
		return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

	def verify_token(self, path: str, token: str) -> bool:
		try:
			payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		except JWTError:
			return False
		return payload.get("typ") == _TOKEN_TYPE and payload.get("sub") == path


_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
	global _store
	if _store is None:
		_store = BlobStore(settings.blob_dir, settings.blob_bucket)
	return _store
