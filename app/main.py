"""FastAPI application entry point for the study-assistant file service."""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import database
from .errors import LLMUnavailable, MalformedQuery, StudyAssistantError
from .services import extraction, ingestion, rag
from .services.llm import DEFAULT_MODEL, ChatClient, GroqChatClient, LLMCallError

load_dotenv()

# Configuration via environment variables
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", DEFAULT_MODEL)
QA_CONTEXT_LIMIT = int(os.getenv("QA_CONTEXT_LIMIT", "6"))
QUIZ_CONTEXT_LIMIT = int(os.getenv("QUIZ_CONTEXT_LIMIT", "6"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(8 * 1024 * 1024)))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SERVER_START_MS = int(time.time() * 1000)

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install a single stdout handler on the root logger."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_llm_client() -> Optional[ChatClient]:
    """Create the chat client, or None when no API key is configured."""
    if not GROQ_API_KEY:
        logger.warning("GROQ_API_KEY missing; model-backed endpoints are disabled")
        return None
    logger.info("Groq client ready. Model: %s", GROQ_MODEL)
    return GroqChatClient(api_key=GROQ_API_KEY, model=GROQ_MODEL)


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.llm_client = build_llm_client()
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    logger.info("Uploads directory (%s) contains %d entries.", UPLOAD_DIR, len(os.listdir(UPLOAD_DIR)))
    yield


app = FastAPI(title="Study Assistant File Service", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StudyAssistantError)
async def handle_study_assistant_error(request: Request, exc: StudyAssistantError) -> JSONResponse:
    logger.warning("%s on %s: %s", exc.__class__.__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})


@app.exception_handler(LLMCallError)
async def handle_llm_error(request: Request, exc: LLMCallError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"ok": False, "error": str(exc)})


def get_upload_dir() -> str:
    return UPLOAD_DIR


def get_store(upload_dir: str = Depends(get_upload_dir)) -> database.DocumentStore:
    return database.DocumentStore(database.JsonFileStore(os.path.join(upload_dir, database.META_DIR)))


def get_llm_client(request: Request) -> Optional[ChatClient]:
    return getattr(request.app.state, "llm_client", None)


def _require_text(body: dict, field: str) -> str:
    value = body.get(field)
    if not value or not isinstance(value, str) or not value.strip():
        raise MalformedQuery(f"Missing {field}")
    return value


@app.get("/api/ping")
async def ping(client: Optional[ChatClient] = Depends(get_llm_client)) -> dict:
    """Liveness plus provider info; ``serverStart`` lets the frontend detect restarts."""
    return {
        "ok": True,
        "uptime": time.time() - SERVER_START_MS / 1000,
        "provider": "Groq" if client else "none",
        "model": client.model if client else None,
        "serverStart": SERVER_START_MS,
    }


@app.get("/health")
async def health() -> dict:
    """Simple health check endpoint."""
    return {"status": "ok"}


@app.post("/api/upload")
async def upload_endpoint(
    file: Optional[UploadFile] = File(default=None),
    upload_dir: str = Depends(get_upload_dir),
    store: database.DocumentStore = Depends(get_store),
    client: Optional[ChatClient] = Depends(get_llm_client),
) -> dict:
    """Store an uploaded file and its chunked text.

    Text is extracted by extension (plain text, PDF, or OCR for images).  A
    file with no extractable text is still stored with an empty chunk list.
    """
    if file is None:
        raise MalformedQuery("No file uploaded (field 'file')")
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {MAX_UPLOAD_BYTES} bytes.",
        )
    uploaded_at = datetime.now(timezone.utc)
    original_name = file.filename or "upload"
    storage_key = ingestion.make_storage_key(original_name, uploaded_at)
    full_path = os.path.join(upload_dir, storage_key)
    os.makedirs(upload_dir, exist_ok=True)
    with open(full_path, "wb") as fh:
        fh.write(content)

    extracted = extraction.extract_text(full_path, original_name)
    record = ingestion.build_record(
        extracted,
        original_name=original_name,
        storage_key=storage_key,
        size_bytes=len(content),
        mime_type=file.content_type or "application/octet-stream",
        uploaded_at=uploaded_at,
    )
    store.save(record)
    logger.info("Stored upload %s with %d chunks", storage_key, len(record.chunks))

    ai_response = None
    if record.chunks and client is not None:
        try:
            ai_response = rag.analyze_upload(ingestion.normalize(extracted), client)
        except LLMCallError:
            # The upload itself succeeded; the file can still be queried later.
            logger.exception("Immediate analysis failed for %s", storage_key)
    return {"ok": True, "meta": record.to_dict(), "aiResponse": ai_response}


@app.post("/api/file-qa")
async def file_qa_endpoint(
    body: dict = Body(...),
    store: database.DocumentStore = Depends(get_store),
    client: Optional[ChatClient] = Depends(get_llm_client),
) -> dict:
    """Answer a question about a previously uploaded file."""
    file_key = _require_text(body, "fileFilename")
    question = _require_text(body, "question")
    record = store.load(file_key)
    if record.chunks and client is None:
        raise LLMUnavailable()
    result = rag.answer_question(record, question, client, QA_CONTEXT_LIMIT)
    return {"ok": True, **result}


@app.post("/api/file-quiz")
async def file_quiz_endpoint(
    body: dict = Body(...),
    store: database.DocumentStore = Depends(get_store),
    client: Optional[ChatClient] = Depends(get_llm_client),
):
    """Generate a quiz from the opening chunks of an uploaded file."""
    file_key = _require_text(body, "fileFilename")
    record = store.load(file_key)
    if record.chunks and client is None:
        raise LLMUnavailable()
    result = rag.generate_quiz(record, client, QUIZ_CONTEXT_LIMIT)
    if result["quiz"] is None:
        logger.error("/api/file-quiz: failed to parse JSON from AI response")
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={
                "ok": False,
                "error": "Failed to parse JSON from AI response",
                "aillm_response": result["text"],
            },
        )
    return {"ok": True, "quiz": result["quiz"]}


@app.get("/api/files/{key}/context")
async def file_context_endpoint(
    key: str,
    question: Optional[str] = None,
    limit: int = QA_CONTEXT_LIMIT,
    store: database.DocumentStore = Depends(get_store),
) -> dict:
    """Return the context that would be sent to the model, without calling it.

    With a ``question`` the chunks are ranked by keyword overlap; without one
    the first ``limit`` chunks are returned.
    """
    if limit < 1:
        raise MalformedQuery("limit must be at least 1")
    record = store.load(key)
    if question is not None:
        selection = rag.select_context(record, question, limit)
    else:
        selection = rag.select_leading(record, limit)
    return {"ok": True, "usedChunks": selection.previews, "context": selection.context}
