import logging
import os
import pathlib
from io import BytesIO

from google.cloud import storage
from PIL import Image, UnidentifiedImageError

from mktops.core.config import settings

logger = logging.getLogger("mktops.storage")

ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
AVATAR_SIZE = (256, 256)


class StorageError(Exception):
    pass


class StorageClient:
    """Upload de arquivos publicos (logo e avatares).

    Sem ``STORAGE_BUCKET`` ou com ``LOCAL_STORAGE=1`` grava em disco, em
    ``LOCAL_STORAGE_DIR/<bucket>/``.
    """

    def __init__(self) -> None:
        self.bucket_name = os.getenv("STORAGE_BUCKET", settings.STORAGE_BUCKET or "") or None
        self.use_local = os.getenv("LOCAL_STORAGE", "0") == "1" or not self.bucket_name
        self.base_dir = pathlib.Path(os.getenv("LOCAL_STORAGE_DIR", "storage")).resolve()
        if self.use_local:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self._client = storage.Client() if self.bucket_name and not self.use_local else None

    def upload(self, bucket: str, filename: str, content: bytes, content_type: str) -> str:
        if len(content) > MAX_UPLOAD_BYTES:
            raise StorageError("Arquivo excede o tamanho maximo permitido.")
        if self.use_local:
            full_path = self.base_dir / bucket / filename
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)
            logger.info("upload local bucket=%s name=%s bytes=%s", bucket, filename, len(content))
            return full_path.as_uri()
        if not self._client:
            raise StorageError("STORAGE_BUCKET nao configurado.")
        blob = self._client.bucket(self.bucket_name).blob(f"{bucket}/{filename}")
        blob.upload_from_string(content, content_type=content_type)
        logger.info("upload gcs bucket=%s name=%s bytes=%s", bucket, filename, len(content))
        return blob.public_url


def extension_for(content_type: str | None, filename: str | None = None) -> str:
    if content_type in ALLOWED_IMAGE_TYPES:
        return ALLOWED_IMAGE_TYPES[content_type]
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
        if ext in {"png", "jpg", "jpeg", "webp", "svg"}:
            return ext
    raise StorageError("Formato de imagem nao suportado.")


def make_thumbnail(content: bytes, size: tuple[int, int] = AVATAR_SIZE) -> bytes:
    try:
        image = Image.open(BytesIO(content))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise StorageError("Imagem invalida.") from exc
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    image.thumbnail(size)
    output = BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()
