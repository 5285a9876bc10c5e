import logging
import os
import uuid

from django.core.files.storage import default_storage

from payments.conf import payment_settings
from payments.exceptions import DependencyFailure, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_PROOF_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "application/pdf",
}


def store_proof_of_payment(user_id, upload) -> str:
    """
    Save an uploaded proof of payment and return its storage reference.

    Raises:
        ValidationError: If the file type or size is not accepted.
        DependencyFailure: If the storage backend fails.
    """
    content_type = getattr(upload, "content_type", "") or ""
    if content_type and content_type not in ALLOWED_PROOF_TYPES:
        raise ValidationError(
            "Invalid file type. Please upload JPG, PNG, GIF, or PDF files only.",
            field="proof_of_payment",
        )
    if upload.size > payment_settings.PROOF_MAX_UPLOAD_BYTES:
        raise ValidationError(
            "File size too large. Please upload a smaller file.",
            field="proof_of_payment",
        )

    ext = os.path.splitext(upload.name or "")[1].lower() or ".bin"
    name = f"payment-proofs/{user_id}/{uuid.uuid4().hex}{ext}"
    try:
        reference = default_storage.save(name, upload)
    except OSError as exc:
        logger.error("Proof upload failed: user=%s error=%s", user_id, str(exc))
        raise DependencyFailure("Could not store proof of payment.") from exc

    logger.info("Proof of payment stored: user=%s ref=%s", user_id, reference)
    return reference


def discard_proof_of_payment(reference):
    try:
        default_storage.delete(reference)
    except OSError:
        logger.warning("Could not delete orphaned proof of payment: ref=%s", reference)
