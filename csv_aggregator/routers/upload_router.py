# routers/upload_router.py

"""
Upload and Download API Routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from fastapi.concurrency import run_in_threadpool

from csv_aggregator.core.config import Settings
from csv_aggregator.core.dependencies import get_aggregation_service, get_settings, verify_api_key
from csv_aggregator.core.exceptions import CapacityError
from csv_aggregator.models.job import UploadResponse
from csv_aggregator.services.aggregation_service import AggregationService
from csv_aggregator.utils.file_handler import is_allowed_upload, is_safe_filename, save_upload

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"], dependencies=[Depends(verify_api_key)])


@router.post("/upload", response_model=UploadResponse, status_code=202)
async def upload_csv(
        file: Optional[UploadFile] = File(None),
        settings: Settings = Depends(get_settings),
        service: AggregationService = Depends(get_aggregation_service)
):
    """Upload a CSV file and start aggregating it in the background"""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    logger.info(f"POST /upload - Received file '{file.filename}'")

    if not is_allowed_upload(file.filename):
        logger.warning(f"Rejected upload with unsupported extension: '{file.filename}'")
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    try:
        file_path = await run_in_threadpool(save_upload, file.file, file.filename, settings.upload_dir)
    except OSError as e:
        logger.error(f"Failed to save uploaded file '{file.filename}': {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to save uploaded file")
    finally:
        await file.close()

    try:
        job_id = await run_in_threadpool(service.submit, file_path)
    except CapacityError as e:
        file_path.unlink(missing_ok=True)
        raise HTTPException(status_code=503, detail=str(e))

    return UploadResponse(
        job_id=job_id,
        message="File uploaded successfully. Processing started."
    )


@router.get("/download/{filename}")
async def download_result(
        filename: str,
        service: AggregationService = Depends(get_aggregation_service)
):
    """Download an aggregated result file"""
    logger.info(f"GET /download/{filename}")

    if not is_safe_filename(filename):
        raise HTTPException(status_code=400, detail="Invalid filename")

    file_path = service.result_location(filename)
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        file_path,
        media_type="application/octet-stream",
        filename=filename
    )
