from fastapi import APIRouter, Depends, File, UploadFile

from ..dependencies import get_current_user, get_file_storage
from ..models import User
from ..schemas import FileUploadResponse
from ..utils.file_storage import FileStorage

router = APIRouter(prefix="/file-upload", tags=["files"])


@router.post("", response_model=FileUploadResponse)
def upload_file(
    file: UploadFile = File(...),
    storage: FileStorage = Depends(get_file_storage),
    _: User = Depends(get_current_user),
):
    """Store an uploaded file (e.g. a profile image) and return its public path."""
    # One byte past the limit is enough to reject an oversized upload
    content = file.file.read(storage.max_size + 1)
    return storage.save(file.filename, content)
