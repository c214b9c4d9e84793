"""
File Service

Stores payment proof images in the blob store (a folder under UPLOAD_FOLDER)
and hands back the public URL that is recorded on the booking.
"""

from typing import Optional
import logging
import os
from flask import current_app
from werkzeug.utils import secure_filename
from .exceptions import InvalidRequest, UpstreamFailure

logger = logging.getLogger(__name__)

PROOF_SUBFOLDER = 'payment-proofs'


class FileService:
    """Service class for payment proof storage"""

    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'heic'}
    MAX_FILE_SIZE = 16 * 1024 * 1024  # 16MB

    def __init__(self, upload_folder: Optional[str] = None, url_prefix: Optional[str] = None):
        self.upload_folder = upload_folder or current_app.config.get('UPLOAD_FOLDER', 'uploads')
        self.url_prefix = (url_prefix or current_app.config.get('PROOF_URL_PREFIX', '/uploads/payment-proofs')).rstrip('/')
        self.max_file_size = current_app.config.get('MAX_CONTENT_LENGTH') or self.MAX_FILE_SIZE

    def allowed_file(self, filename: str) -> bool:
        """Check if file extension is allowed."""
        return '.' in filename and \
               filename.rsplit('.', 1)[1].lower() in self.ALLOWED_EXTENSIONS

    @staticmethod
    def proof_filename(booking_id: int, moment, extension: str) -> str:
        """<booking id>-<epoch millis>.<ext>"""
        millis = int(moment.timestamp() * 1000)
        return f"{booking_id}-{millis}.{extension.lower()}"

    def proof_folder(self) -> str:
        return os.path.join(os.path.abspath(self.upload_folder), PROOF_SUBFOLDER)

    def save_payment_proof(self, file, booking_id: int, moment) -> str:
        """
        Write an uploaded proof image to the blob store.

        Args:
            file: werkzeug FileStorage from the multipart request
            booking_id: booking the proof belongs to
            moment: upload time, used in the stored name

        Returns:
            str: public URL of the stored image

        Raises:
            InvalidRequest: no file, wrong type or too large
            UpstreamFailure: the blob store could not be written
        """
        if not file or not file.filename:
            raise InvalidRequest("No file provided")

        original_filename = secure_filename(file.filename)
        if not self.allowed_file(original_filename):
            raise InvalidRequest(f"File type not allowed. Allowed types: {', '.join(sorted(self.ALLOWED_EXTENSIONS))}")

        # Check file size
        file.stream.seek(0, 2)
        file_size = file.stream.tell()
        file.stream.seek(0)

        if file_size == 0:
            raise InvalidRequest("Uploaded file is empty")
        if file_size > self.max_file_size:
            raise InvalidRequest(f"File too large. Maximum size: {self.max_file_size // (1024 * 1024)}MB")

        extension = original_filename.rsplit('.', 1)[1]
        filename = self.proof_filename(booking_id, moment, extension)

        try:
            folder = self.proof_folder()
            os.makedirs(folder, exist_ok=True)
            file.save(os.path.join(folder, filename))
        except OSError as e:
            logger.error(f"Error saving payment proof for booking {booking_id}: {str(e)}")
            raise UpstreamFailure("Could not store payment proof") from e

        logger.info(f"Payment proof stored: {filename} ({file_size} bytes)")
        return f"{self.url_prefix}/{filename}"

    def delete_payment_proof(self, url: str) -> bool:
        """Remove a stored proof by its public URL. Returns False if it was not there."""
        filename = secure_filename(url.rsplit('/', 1)[-1])
        if not filename:
            return False

        path = os.path.join(self.proof_folder(), filename)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error deleting payment proof {filename}: {str(e)}")
            raise UpstreamFailure("Could not delete payment proof") from e

        logger.info(f"Payment proof deleted: {filename}")
        return True
