# utils/file_handler.py

"""
File handling utilities
"""

import os
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Union

ALLOWED_UPLOAD_EXTENSIONS = {".csv"}
COPY_CHUNK_SIZE = 1024 * 1024


def is_allowed_upload(filename: str) -> bool:
    """Only files with a .csv extension are accepted"""
    return os.path.splitext(filename)[1] in ALLOWED_UPLOAD_EXTENSIONS


def is_safe_filename(filename: str) -> bool:
    """True when ``filename`` is a bare name that cannot escape its directory"""
    return (
        bool(filename)
        and filename not in (".", "..")
        and os.path.basename(filename) == filename
        and "\\" not in filename
    )


def save_upload(source: BinaryIO, filename: str, upload_dir: Union[str, Path]) -> Path:
    """Stream an uploaded file to disk under a unique name and return its path"""
    Path(upload_dir).mkdir(parents=True, exist_ok=True)

    safe_name = os.path.basename(filename.replace("\\", "/"))
    filepath = Path(upload_dir) / f"{uuid.uuid4()}_{safe_name}"

    with open(filepath, 'wb') as f:
        shutil.copyfileobj(source, f, COPY_CHUNK_SIZE)

    return filepath
