from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse

from app.api.deps import get_current_user_id, get_runtime
from app.core.errors import NotFoundError
from app.domains.runtime import Runtime
from app.domains.social.schemas import UploadResponse

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    image: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    runtime: Runtime = Depends(get_runtime),
):
    """Загрузка изображения, возвращает имя файла"""
    data = await image.read()
    filename = runtime.blobs.save("image", image.content_type, data)
    return UploadResponse(filename=filename)


@router.get("/{filename}")
async def get_upload(filename: str, runtime: Runtime = Depends(get_runtime)):
    if not runtime.blobs.exists(filename):
        raise NotFoundError(f"Upload '{filename}' not found")
    return FileResponse(runtime.blobs.path_for(filename))
