import logging
import os
import random
import time

from fastapi import APIRouter, File, Request, UploadFile
from pydantic import BaseModel

from dealership.core import config
from dealership.routes.common import bad_request

router = APIRouter(tags=['upload'])

logger = logging.getLogger(__name__)

UPLOAD_FIELD_NAME = 'files'
CHUNK_SIZE = 64 * 1024


class UploadResponse(BaseModel):
    success: bool = True
    files: list[str]


def build_stored_filename(original_name: str | None) -> str:
    extension = os.path.splitext(original_name or '')[1].lower()
    unique_suffix = f'{int(time.time() * 1000)}-{random.randint(0, 10**9)}'
    return f'{UPLOAD_FIELD_NAME}-{unique_suffix}{extension}'


def remove_stored_files(upload_dir: str, filenames: list[str]) -> None:
    for filename in filenames:
        path = os.path.join(upload_dir, filename)
        if os.path.exists(path):
            os.remove(path)


def store_upload(upload: UploadFile, upload_dir: str) -> str:
    """Copy one image into ``upload_dir`` and return the stored file name.

    Nothing is left on disk when the copy fails or the file is too large.
    """
    if not (upload.content_type or '').startswith('image/'):
        raise bad_request('Tipo de archivo inválido. Solo se permiten imágenes.')

    filename = build_stored_filename(upload.filename)
    destination = os.path.join(upload_dir, filename)
    written = 0

    try:
        with open(destination, 'wb') as target:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > config.MAX_UPLOAD_BYTES:
                    break
                target.write(chunk)
    except Exception:
        remove_stored_files(upload_dir, [filename])
        raise

    if written > config.MAX_UPLOAD_BYTES:
        remove_stored_files(upload_dir, [filename])
        raise bad_request('El archivo supera el tamaño máximo permitido')

    return filename


@router.post('/upload', response_model=UploadResponse)
def upload_files(request: Request, files: list[UploadFile] | None = File(default=None)):
    if not files:
        raise bad_request('No se recibieron archivos')

    if len(files) > config.MAX_UPLOAD_FILES:
        raise bad_request(f'Se permiten como máximo {config.MAX_UPLOAD_FILES} archivos')

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)

    stored: list[str] = []
    try:
        for upload in files:
            stored.append(store_upload(upload, config.UPLOAD_DIR))
    except Exception:
        # A batch is all or nothing.
        remove_stored_files(config.UPLOAD_DIR, stored)
        raise

    base_url = str(request.base_url).rstrip('/')
    logger.info('Stored %d uploaded image(s)', len(stored))
    return UploadResponse(files=[f'{base_url}/uploads/{filename}' for filename in stored])
