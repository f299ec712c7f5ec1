"""FastAPI main application for the Student Dropout Risk Monitor."""

import os
import logging
import traceback
from datetime import datetime
from typing import Dict, List

from fastapi import FastAPI, File, UploadFile, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware

from dropout_monitor.config import (
    ALLOW_ORIGINS,
    DEBUG,
    MAX_UPLOAD_SIZE,
    MAX_UPLOAD_SIZE_MB,
    RISK_THRESHOLDS,
    SUPPORTED_FILE_TYPES,
)
from dropout_monitor.email_templates import generate_alert_email
from dropout_monitor.export import EXPORT_FILENAME, build_results_csv
from dropout_monitor.mailer import get_smtp_credentials, send_alert_email, validate_email
from dropout_monitor.models import AlertRequest, AlertResponse, ProcessedStudentRecord, UploadResponse
from dropout_monitor.parsers import is_supported_file
from dropout_monitor.pipeline import process_uploads
from dropout_monitor.risk import filter_at_risk, summarize_results

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Student Dropout Risk Monitor", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and return JSON."""
    logger.exception("Unhandled error on %s", request.url.path)
    error_detail = str(exc)
    if DEBUG:
        error_detail = f"{str(exc)}\n\n{traceback.format_exc()}"

    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {error_detail}",
            "type": type(exc).__name__
        }
    )


# Latest processed run only; replaced on every upload
results_cache: Dict[str, List[ProcessedStudentRecord]] = {}


def get_latest_results() -> List[ProcessedStudentRecord]:
    """Results of the most recent upload, or 404."""
    if not results_cache:
        raise HTTPException(status_code=404, detail="No results available")
    latest_session = max(results_cache.keys())
    return results_cache[latest_session]


async def read_upload(upload: UploadFile, label: str) -> bytes:
    """Read an uploaded file after checking its type and size."""
    if not is_supported_file(upload.filename or ''):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type for {label} data. Supported types: {', '.join(SUPPORTED_FILE_TYPES)}"
        )

    file_bytes = await upload.read()
    if len(file_bytes) > MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"{label.capitalize()} file too large. Maximum size: {MAX_UPLOAD_SIZE_MB}MB"
        )
    return file_bytes


@app.get("/", response_class=HTMLResponse)
async def root():
    """Serve a minimal landing page."""
    return HTMLResponse(
        content="<h1>Student Dropout Risk Monitor</h1>"
                "<p>POST attendance, marks and fees files to /upload.</p>"
    )


@app.get("/health")
async def health_check():
    """Health check endpoint to test server connectivity."""
    return JSONResponse(content={
        "status": "ok",
        "email_configured": get_smtp_credentials() is not None
    })


@app.post("/upload", response_model=UploadResponse)
async def upload_files(
    attendance: UploadFile = File(...),
    marks: UploadFile = File(...),
    fees: UploadFile = File(...)
):
    """Upload and process the attendance, marks and fees files."""
    uploads = {}
    for label, upload in (('attendance', attendance), ('marks', marks), ('fees', fees)):
        uploads[label] = (await read_upload(upload, label), upload.filename)

    try:
        results = await run_in_threadpool(process_uploads, uploads, thresholds=RISK_THRESHOLDS)
    except Exception as e:
        logger.error("Error processing files: %s", e)
        raise HTTPException(status_code=400, detail=f"Error processing files: {str(e)}")

    session_id = datetime.now().isoformat()
    results_cache.clear()
    results_cache[session_id] = results

    summary = summarize_results(results)
    logger.info(
        "Results: %d students (%d High Risk, %d At Risk, %d Safe)",
        summary.total, summary.high_risk, summary.at_risk, summary.safe
    )

    return UploadResponse(
        success=True,
        message=f"Successfully processed {len(results)} students",
        results=results,
        summary=summary
    )


@app.get("/results")
async def get_results():
    """Get the last processed results."""
    results = get_latest_results()
    return {
        'session_id': max(results_cache.keys()),
        'results': [r.model_dump() for r in results],
        'summary': summarize_results(results).model_dump()
    }


@app.get("/download.csv")
async def download_csv():
    """Download at-risk students of the last run as CSV."""
    results = get_latest_results()
    content = build_results_csv(results, at_risk_only=True)

    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={EXPORT_FILENAME}"}
    )


@app.post("/send-alerts", response_model=AlertResponse)
async def send_alerts(request: AlertRequest):
    """E-mail mentors the list of at-risk students."""
    recipients = [r.strip() for r in request.recipients if r.strip()]
    if not recipients:
        raise HTTPException(status_code=400, detail="Recipients required")

    invalid = [r for r in recipients if not validate_email(r)]
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid emails: {', '.join(invalid)}")

    students = request.students
    if students is None:
        students = filter_at_risk(get_latest_results())
    if not students:
        raise HTTPException(status_code=400, detail="Students required")

    if get_smtp_credentials() is None:
        raise HTTPException(status_code=500, detail="EMAIL_USER and EMAIL_PASS not set")

    email = generate_alert_email(students, request.subject)
    try:
        message_id = await run_in_threadpool(send_alert_email, recipients, email['subject'], email['html'])
    except Exception as e:
        logger.error("Email sending failed: %s", e)
        raise HTTPException(status_code=500, detail=f"Email sending failed: {str(e)}")

    return AlertResponse(success=True, message_id=message_id, students_count=len(students))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv('PORT', '8000')))
