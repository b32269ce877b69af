"""
FastAPI app for the uploads service.

Responsibilities:
- Accept PDF uploads (exam questions and course notes) with course metadata:
    * write the file to the blob store (UPLOAD_DIR)
    * build its public URL from BASE_URL
    * insert the metadata record into MongoDB
- Answer filtered listings of both record types (/questions, /notes).
- Serve stored files read-only under /uploads/.
- Expose /health for container checks.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional
from urllib.parse import quote

import uvicorn
from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel
from pymongo.errors import PyMongoError
from starlette.middleware.cors import CORSMiddleware

from common.config import settings
from .models import ErrorResponse, HealthResponse, NoteRecord, QuestionRecord
from .records import RecordStore
from .storage import BlobStore

logger = logging.getLogger("uploads")

# -----------------------------------------------------------------------------
# Process-wide state (set on startup, cleared on shutdown)
# -----------------------------------------------------------------------------
class ServiceState:
    def __init__(self, blobs: BlobStore):
        self.blobs = blobs
        self.client: Optional[AsyncIOMotorClient] = None
        self.questions: Optional[RecordStore] = None
        self.notes: Optional[RecordStore] = None

state = ServiceState(BlobStore(settings.upload_dir))

@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Open the single Mongo client used for the life of the process.

    A failed ping is logged and startup carries on; requests then answer 500
    until the database becomes reachable.
    """
    # Short server selection so an unreachable database can't hold up startup.
    state.client = AsyncIOMotorClient(
        settings.mongodb_uri, serverSelectionTimeoutMS=settings.mongodb_timeout_ms
    )
    db = state.client.get_default_database(settings.mongodb_db)
    state.questions = RecordStore(db["questions"])
    state.notes = RecordStore(db["notes"])
    try:
        await state.client.admin.command("ping")
        logger.info("MongoDB connected db=%s", db.name)
    except PyMongoError as e:
        logger.error("MongoDB connection error: %s", e)

    logger.info("Server running on port %s", settings.port)
    logger.info("Public file URL base: %s/uploads/", settings.base_url)
    try:
        yield
    finally:
        state.client.close()
        state.client = None
        logger.info("MongoDB connection closed")

# -----------------------------------------------------------------------------
# App setup
# -----------------------------------------------------------------------------
app = FastAPI(title="uploads-service", version="1.0.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")

@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed client input is a 400 with the uniform error body."""
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())

# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------
@app.get("/health", response_model=HealthResponse)
def health():
    """
    Lightweight readiness endpoint.
    Cheap (no external calls) so Docker health checks are reliable.
    """
    return HealthResponse(status="ok", service=settings.service_name)

# -----------------------------------------------------------------------------
# Uploads
# -----------------------------------------------------------------------------
def public_url(stored_name: str) -> str:
    return f"{settings.base_url}/uploads/{quote(stored_name)}"

async def _discard(stored_name: str) -> None:
    """Compensating action: drop a file whose record never got written."""
    try:
        await state.blobs.delete(stored_name)
        logger.info("Removed orphaned upload %s", stored_name)
    except OSError:
        logger.exception("Could not remove orphaned upload %s", stored_name)

async def _handle_upload(
    pdf: Optional[UploadFile],
    store_of: Callable[[], Optional[RecordStore]],
    make_record: Callable[[str], BaseModel],
):
    """
    Shared upload workflow:
      1) Write the file to the blob store
      2) Compose its public pdfUrl
      3) Build the record from the form fields + pdfUrl
      4) Insert the record
      5) Return the stored record (with _id)

    If anything after step 1 fails, the written file is deleted again so no
    file is left without a record.
    """
    if pdf is None or not pdf.filename:
        return _error(400, "No file uploaded")

    stored_name: Optional[str] = None
    try:
        stored_name = await state.blobs.put(pdf, pdf.filename)
        record = make_record(public_url(stored_name))
        return await store_of().insert(record)
    except Exception:
        logger.exception("Error uploading file")
        if stored_name is not None:
            await _discard(stored_name)
        return _error(500, "Failed to upload file")
    finally:
        await pdf.close()

@app.post(
    "/upload/question",
    response_model=QuestionRecord,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_question(
    courseName: str = Form(...),
    year: int = Form(...),
    term: str = Form(...),
    semester: int = Form(...),
    pdf: Optional[UploadFile] = File(None),
):
    return await _handle_upload(
        pdf,
        lambda: state.questions,
        lambda url: QuestionRecord(
            course_name=courseName, year=year, term=term, semester=semester, pdf_url=url
        ),
    )

@app.post(
    "/upload/note",
    response_model=NoteRecord,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_note(
    courseName: str = Form(...),
    term: str = Form(...),
    semester: int = Form(...),
    pdf: Optional[UploadFile] = File(None),
):
    return await _handle_upload(
        pdf,
        lambda: state.notes,
        lambda url: NoteRecord(course_name=courseName, term=term, semester=semester, pdf_url=url),
    )

# -----------------------------------------------------------------------------
# Listings
# -----------------------------------------------------------------------------
def _int_filter(value: Optional[str]) -> Optional[int]:
    """
    Numeric filters arrive as text. Empty means no constraint (GET forms send
    "year=" for a blank field); anything else must parse as an integer.
    """
    if value is None or not value.strip():
        return None
    return int(value)

@app.get(
    "/questions",
    response_model=List[QuestionRecord],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def list_questions(
    courseName: Optional[str] = Query(None, description="Case-insensitive substring of the course name"),
    year: Optional[str] = Query(None, description="Integer, exact match"),
    term: Optional[str] = Query(None),
    semester: Optional[str] = Query(None, description="Integer, exact match"),
):
    try:
        filters = {
            "courseName": courseName,
            "year": _int_filter(year),
            "term": term,
            "semester": _int_filter(semester),
        }
    except ValueError:
        return _error(400, "Invalid request")

    try:
        return await state.questions.find(filters)
    except Exception:
        logger.exception("Error fetching questions")
        return _error(500, "Failed to fetch questions")

@app.get(
    "/notes",
    response_model=List[NoteRecord],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def list_notes(
    courseName: Optional[str] = Query(None, description="Case-insensitive substring of the course name"),
    term: Optional[str] = Query(None),
    semester: Optional[str] = Query(None, description="Integer, exact match"),
):
    try:
        filters = {"courseName": courseName, "term": term, "semester": _int_filter(semester)}
    except ValueError:
        return _error(400, "Invalid request")

    try:
        return await state.notes.find(filters)
    except Exception:
        logger.exception("Error fetching notes")
        return _error(500, "Failed to fetch notes")

# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------
def run() -> None:
    """Serve the app with uvicorn on HOST:PORT."""
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
