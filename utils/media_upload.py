"""
utils/media_upload.py — Plant image upload to the media host (Cloudinary).

Sends the image through the Cloudinary SDK and returns the permanent https
URL. The catalog only stores that URL on the plant record.

Credentials come from app.config (see config.py):
CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET,
CLOUDINARY_FOLDER.
"""

from typing import Dict, Any

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from errors import MediaUploadError, ValidationError
from logging_config import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp'}
UPLOAD_TIMEOUT = 30  # seconds


def allowed_image(filename: str) -> bool:
    """Check the file extension against the accepted image types."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def configure_cloudinary(config: Dict[str, Any]) -> None:
    """
    Point the Cloudinary SDK at the configured account.

    Raises:
        MediaUploadError: any of the three credentials is missing
    """
    cloud_name = config.get('CLOUDINARY_CLOUD_NAME')
    api_key = config.get('CLOUDINARY_API_KEY')
    api_secret = config.get('CLOUDINARY_API_SECRET')
    if not (cloud_name and api_key and api_secret):
        raise MediaUploadError("El servicio de imágenes no está configurado.")

    cloudinary.config(
        cloud_name=cloud_name,
        api_key=api_key,
        api_secret=api_secret,
        secure=True,
    )


def upload_image(file_storage, config: Dict[str, Any]) -> str:
    """
    Upload one image file.

    Args:
        file_storage: werkzeug FileStorage from request.files
        config: mapping holding the CLOUDINARY_* settings

    Returns:
        The secure (https) URL of the uploaded image

    Raises:
        ValidationError: no file, or not an image type we accept
        MediaUploadError: media host not configured, unreachable, or
                          rejecting the upload
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No se subió ningún archivo.")
    if not allowed_image(file_storage.filename):
        raise ValidationError(
            f"Tipo de archivo no permitido (extensiones: {', '.join(sorted(ALLOWED_EXTENSIONS))})."
        )

    configure_cloudinary(config)

    try:
        result = cloudinary.uploader.upload(
            file_storage.stream,
            folder=config.get('CLOUDINARY_FOLDER') or None,
            resource_type='image',
            timeout=UPLOAD_TIMEOUT,
        )
    except CloudinaryError as e:
        logger.error("Image upload failed: %s", e)
        raise MediaUploadError("Error al subir la imagen.") from e

    url = (result or {}).get('secure_url')
    if not url:
        raise MediaUploadError("Respuesta inválida del servicio de imágenes.")

    logger.info("Uploaded image %s", url)
    return url
