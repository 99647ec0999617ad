from fastapi import APIRouter
from fastapi.responses import FileResponse

from ..blobstore import get_blob_store
from ..errors import ForbiddenError, NotFoundError

router = APIRouter(prefix="/blobs", tags=["blobs"])


@router.get("/{path:path}", name="read_blob")
def read_blob(path: str, token: str = ""):
	"""Serve a stored recording to the holder of a signed link."""
	store = get_blob_store()
	if not token or not store.verify_token(path, token):
		raise ForbiddenError("Invalid or expired link")
	local = store.local_path(path)
	if local is None:
		raise NotFoundError("Blob not found")
	return FileResponse(local)
