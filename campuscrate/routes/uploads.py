# Image upload endpoints backed by the configured BlobStore.
# The store call completes before any URL is returned or saved on a record.
import logging
import os
from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..errors import BlobStoreError, ValidationError
from ..rate_limit import rate_limit
from ..services import accounts
from ..storage import IMAGE_EXTENSIONS, BlobStore, get_blob_store
from .auth import get_current_user

router = APIRouter()
logger = logging.getLogger("campuscrate.storage")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))
MAX_FILES_PER_REQUEST = 5

ITEM_FOLDER = "items"
PROFILE_FOLDER = "profiles"


def _read_image(upload: UploadFile) -> bytes:
    if upload.content_type not in IMAGE_EXTENSIONS:
        raise ValidationError("Only image files are allowed", code="unsupported_media_type")
    data = upload.file.read(MAX_UPLOAD_BYTES + 1)
    if not data:
        raise ValidationError("Empty file", code="empty_upload")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError(f"File exceeds the {MAX_UPLOAD_BYTES // (1024 * 1024)} MB limit", code="file_too_large")
    return data


@router.post("/upload/image", response_model=schemas.UploadResponse, dependencies=[Depends(rate_limit("upload"))])
def upload_image(
    image: UploadFile = File(...),
    store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
) -> schemas.UploadResponse:
    url = store.store(_read_image(image), ITEM_FOLDER, image.content_type)
    return schemas.UploadResponse(image_url=url)


@router.post("/upload/images", response_model=schemas.MultiUploadResponse, dependencies=[Depends(rate_limit("upload"))])
def upload_images(
    images: List[UploadFile] = File(...),
    store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
) -> schemas.MultiUploadResponse:
    if len(images) > MAX_FILES_PER_REQUEST:
        raise ValidationError(f"At most {MAX_FILES_PER_REQUEST} images per request")
    # Validate everything before storing anything
    payloads = [(_read_image(f), f.content_type) for f in images]
    urls = [store.store(data, ITEM_FOLDER, content_type) for data, content_type in payloads]
    return schemas.MultiUploadResponse(image_urls=urls, count=len(urls))


@router.post("/upload/profile-image", response_model=schemas.UploadResponse, dependencies=[Depends(rate_limit("upload"))])
def upload_profile_image(
    image: UploadFile = File(...),
    db: Session = Depends(get_db),
    store: BlobStore = Depends(get_blob_store),
    user: models.User = Depends(get_current_user),
) -> schemas.UploadResponse:
    previous = user.profile_image
    url = store.store(_read_image(image), PROFILE_FOLDER, image.content_type)
    accounts.update_profile(db, user, {"profile_image": url})
    if previous:
        try:
            store.delete(previous)
        except BlobStoreError as exc:
            # The new image is already live; a stale blob is only wasted space
            logger.warning("profile_image.cleanup_failed url=%s: %s", previous, exc)
    return schemas.UploadResponse(image_url=url)
