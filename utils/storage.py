import os
import secrets
from datetime import datetime

from flask import current_app
from werkzeug.utils import secure_filename

from services.errors import ValidationError


def _extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def save_upload(file_storage, category: str) -> str:
    """
    Store an uploaded file under UPLOAD_FOLDER/<category>/ and return its public URL.
    """
    filename = secure_filename(file_storage.filename or "")
    ext = _extension(filename)
    allowed = current_app.config.get("ALLOWED_PROOF_EXTENSIONS", set())
    if not filename or ext not in allowed:
        raise ValidationError(f"Unsupported file type. Allowed: {', '.join(sorted(allowed))}")

    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], category)
    os.makedirs(folder, exist_ok=True)

    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    stored_name = f"{category}-{stamp}-{secrets.token_hex(4)}{ext}"
    file_storage.save(os.path.join(folder, stored_name))

    prefix = current_app.config.get("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")
    return f"{prefix}/{category}/{stored_name}"
