from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
import json
import re
import sys

from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

# Allow running as `python docchat/main.py` in addition to module mode.
if __package__ is None or __package__ == "":
    sys.path.append(str(Path(__file__).resolve().parents[1]))

from docchat.chat_service import CHAT_LOGGER, ChatService
from docchat.config import ensure_runtime_dirs, settings
from docchat.database import GREETING_KEY, Database, DuplicateDocumentError
from docchat.errors import BackendInvocationFailed, BackendThrottled, ChatError, EmptyGeneration, EmptyInput
from docchat.llm import RuntimeLLMClient
from docchat.models import (
    AvailableDocument,
    AvailableDocumentsResponse,
    ChatMessageResponse,
    ChatMessagesResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionResponse,
    ChatSessionsResponse,
    ChatTopicResponse,
    DocumentResponse,
    MessageResponse,
    ReactionRequest,
    ReactionResponse,
    RenameDocumentRequest,
    SaveSettingsRequest,
    SaveSettingsResponse,
    SettingsResponse,
    SuccessResponse,
    TemplateQuestion,
    TemplateQuestionRequest,
    TemplateQuestionsResponse,
    UploadResponse,
)
from docchat.parsers import file_extension


GREETING_MAX_CHARS = 500
REFERENCE_HINT = "To reference a specific document in your question, mention its name or use 'file 1', 'file 2', etc."

CHAT_ERROR_STATUS = {
    EmptyInput.kind: (400, "Message is required"),
    BackendThrottled.kind: (429, "Service is busy. Please wait a moment and try again."),
    BackendInvocationFailed.kind: (503, "AI service temporarily unavailable. Please try again."),
    EmptyGeneration.kind: (422, "Invalid response from AI. Please rephrase your question."),
}


def configure(
    target: FastAPI,
    db: Database,
    llm: RuntimeLLMClient,
    upload_dir: str | Path,
) -> FastAPI:
    upload_root = Path(upload_dir)
    upload_root.mkdir(parents=True, exist_ok=True)
    db.init_schema()
    target.state.db = db
    target.state.llm = llm
    target.state.upload_dir = upload_root
    target.state.chat_service = ChatService(db, llm, upload_root)
    return target


def build_default_components() -> tuple[Database, RuntimeLLMClient, Path]:
    ensure_runtime_dirs()
    db = Database(
        settings.sqlite_path,
        default_greeting=settings.default_greeting,
        default_updated_by=settings.default_updated_by,
    )
    llm = RuntimeLLMClient(
        provider=settings.llm_provider,
        aws_region=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        bedrock_model_id=settings.bedrock_model_id,
        openai_api_key=settings.openai_api_key,
        openai_model=settings.openai_model,
        openai_base_url=settings.openai_base_url,
        temperature=settings.llm_temperature,
        timeout=settings.llm_timeout_sec,
        max_retries=settings.llm_max_retries,
        base_delay=settings.llm_retry_base_delay_sec,
        settings_path=settings.llm_settings_path,
    )
    return db, llm, Path(settings.upload_dir)


@asynccontextmanager
async def lifespan(target: FastAPI):
    if not hasattr(target.state, "db"):
        configure(target, *build_default_components())
    yield


app = FastAPI(title="DocChat API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_llm(request: Request) -> RuntimeLLMClient:
    return request.app.state.llm


def get_upload_dir(request: Request) -> Path:
    return request.app.state.upload_dir


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_filename(name: str | None) -> str:
    base = Path((name or "").replace("\\", "/")).name
    base = re.sub(r"[^\w\-. ()]", "_", base).strip(" .")
    return base


async def _write_upload_file(upload: UploadFile, target_path: Path, chunk_size: int = 1024 * 1024) -> None:
    with target_path.open("wb") as out:
        while True:
            chunk = await upload.read(chunk_size)
            if not chunk:
                break
            out.write(chunk)


def _message_response(row) -> ChatMessageResponse:
    item = dict(row)
    refs = None
    if item.get("documents_referenced"):
        try:
            refs = json.loads(item["documents_referenced"])
        except ValueError:
            CHAT_LOGGER.warning("message %s has unreadable documents_referenced", item["id"])
    is_liked = item.get("is_liked")
    return ChatMessageResponse(
        id=item["id"],
        sender=item["sender"],
        text=item["text"],
        is_liked=None if is_liked is None else bool(is_liked),
        documents_referenced=refs,
        timestamp=item["timestamp"],
    )


def _template_question(row) -> TemplateQuestion:
    item = dict(row)
    return TemplateQuestion(
        id=item["id"],
        question=item["question"],
        answer=item["answer"],
        updated_by=item["updated_by"],
        last_updated=item["last_updated"],
        is_active=bool(item["is_active"]),
    )


def _require_question_and_answer(req: TemplateQuestionRequest) -> tuple[str, str]:
    question = (req.question or "").strip()
    answer = (req.answer or "").strip()
    if not question or not answer:
        raise HTTPException(status_code=400, detail="Question and answer are required")
    return question, answer


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/settings/llm")
def get_llm_settings(llm: RuntimeLLMClient = Depends(get_llm)):
    return llm.get_runtime_config()


@app.post("/settings/llm")
def update_llm_settings(payload: dict = Body(...), llm: RuntimeLLMClient = Depends(get_llm)):
    try:
        return llm.update_runtime_config(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
    llm: RuntimeLLMClient = Depends(get_llm),
):
    if not llm.is_configured():
        return JSONResponse(
            status_code=503,
            content={
                "error": "LLM is not configured. Configure provider/model in settings.",
                "timestamp": _utc_now(),
                "chatId": None,
            },
        )
    try:
        outcome = await chat_service.chat(request.message or "", request.topic)
    except ChatError as exc:
        status_code, error_message = CHAT_ERROR_STATUS.get(exc.kind, (500, "Internal server error"))
        CHAT_LOGGER.error("chat failed | kind=%s | %s", exc.kind, exc)
        return JSONResponse(
            status_code=status_code,
            content={"error": error_message, "timestamp": _utc_now(), "chatId": None},
        )
    except Exception:
        CHAT_LOGGER.exception("chat failed unexpectedly")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "timestamp": _utc_now(), "chatId": None},
        )

    result = outcome["result"]
    return ChatResponse(
        response=result.response_text,
        chat_id=outcome["chat_id"],
        topic=outcome["topic"],
        message_id=outcome["message_id"],
        documents_used=result.documents_used,
        response_metadata=result.response_metadata,
    )


@app.get("/chat/{topic}", response_model=ChatMessagesResponse)
def get_chat_by_topic(topic: str, db: Database = Depends(get_db)) -> ChatMessagesResponse:
    chat_row = db.get_chat_by_topic(topic)
    if not chat_row:
        raise HTTPException(status_code=404, detail="Chat not found")
    return ChatMessagesResponse(messages=[_message_response(r) for r in db.list_messages(chat_row["id"])])


@app.get("/chats", response_model=list[ChatTopicResponse])
def list_chats(db: Database = Depends(get_db)) -> list[ChatTopicResponse]:
    return [ChatTopicResponse(topic=r["topic"]) for r in db.list_chat_topics()]


@app.get("/chat-sessions", response_model=ChatSessionsResponse)
def list_chat_sessions(db: Database = Depends(get_db)) -> ChatSessionsResponse:
    return ChatSessionsResponse(sessions=[ChatSessionResponse(**dict(r)) for r in db.list_chat_sessions()])


@app.get("/chat-sessions/{chat_id}/messages", response_model=ChatMessagesResponse)
def list_session_messages(chat_id: int, db: Database = Depends(get_db)) -> ChatMessagesResponse:
    if not db.get_chat(chat_id):
        raise HTTPException(status_code=404, detail="Chat session not found")
    return ChatMessagesResponse(messages=[_message_response(r) for r in db.list_messages(chat_id)])


@app.post("/messages/{message_id}/reaction", response_model=ReactionResponse)
def set_reaction(message_id: int, req: ReactionRequest, db: Database = Depends(get_db)) -> ReactionResponse:
    message = db.get_message(message_id)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    if message["sender"] != "bot":
        raise HTTPException(status_code=400, detail="Only bot messages can receive reactions")
    updated = db.set_reaction(message_id, req.is_liked)
    is_liked = updated["is_liked"]
    return ReactionResponse(success=True, message_id=message_id, is_liked=None if is_liked is None else bool(is_liked))


@app.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_document(
    document: UploadFile = File(...),
    db: Database = Depends(get_db),
    upload_dir: Path = Depends(get_upload_dir),
) -> UploadResponse:
    original_name = (document.filename or "").strip()
    stored_name = _safe_filename(original_name)
    if not stored_name:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if db.get_document_by_filename(stored_name):
        raise HTTPException(status_code=400, detail="Duplicate document")

    target = upload_dir / stored_name
    await _write_upload_file(document, target)
    await document.close()
    try:
        doc_id = db.add_document(stored_name, original_name)
    except DuplicateDocumentError as exc:
        raise HTTPException(status_code=400, detail="Duplicate document") from exc
    CHAT_LOGGER.info("document uploaded | id=%s | name=%s", doc_id, original_name)
    return UploadResponse(message="Uploaded", id=doc_id)


@app.get("/documents", response_model=list[DocumentResponse])
def list_documents(db: Database = Depends(get_db)) -> list[DocumentResponse]:
    return [
        DocumentResponse(id=r["id"], filename=r["filename"], original_name=r["original_name"], upload_date=r["upload_date"])
        for r in db.list_documents()
    ]


@app.get("/documents/available", response_model=AvailableDocumentsResponse)
def list_available_documents(
    db: Database = Depends(get_db),
    upload_dir: Path = Depends(get_upload_dir),
) -> AvailableDocumentsResponse:
    items: list[AvailableDocument] = []
    for index, row in enumerate(db.list_documents(), start=1):
        path = upload_dir / str(row["filename"])
        exists = path.is_file()
        items.append(
            AvailableDocument(
                id=row["id"],
                name=row["original_name"],
                upload_date=row["upload_date"],
                size=path.stat().st_size if exists else 0,
                type=file_extension(row["original_name"]),
                index=index,
                available=exists,
            )
        )
    return AvailableDocumentsResponse(documents=items, total=len(items), message=REFERENCE_HINT)


@app.put("/documents/{document_id}", response_model=MessageResponse)
def rename_document(document_id: int, req: RenameDocumentRequest, db: Database = Depends(get_db)) -> MessageResponse:
    name = (req.original_name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="originalName is required")
    if not db.rename_document(document_id, name):
        raise HTTPException(status_code=404, detail="Document not found")
    return MessageResponse(message="Document updated")


@app.put("/documents/{document_id}/update", response_model=MessageResponse)
async def replace_document(
    document_id: int,
    document: UploadFile = File(...),
    db: Database = Depends(get_db),
    upload_dir: Path = Depends(get_upload_dir),
) -> MessageResponse:
    existing = db.get_document(document_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Document not found")
    stored_name = _safe_filename(document.filename)
    if not stored_name:
        raise HTTPException(status_code=400, detail="No file uploaded")
    clash = db.get_document_by_filename(stored_name)
    if clash and clash["id"] != document_id:
        raise HTTPException(status_code=400, detail="Duplicate document")

    await _write_upload_file(document, upload_dir / stored_name)
    await document.close()
    try:
        db.replace_document_file(document_id, stored_name)
    except DuplicateDocumentError as exc:
        raise HTTPException(status_code=400, detail="Duplicate document") from exc

    old_path = upload_dir / str(existing["filename"])
    if existing["filename"] != stored_name and old_path.is_file():
        old_path.unlink()
    return MessageResponse(message="File replaced successfully")


@app.delete("/documents/{document_id}", response_model=MessageResponse)
def delete_document(
    document_id: int,
    db: Database = Depends(get_db),
    upload_dir: Path = Depends(get_upload_dir),
) -> MessageResponse:
    existing = db.get_document(document_id)
    if not existing or not db.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    path = upload_dir / str(existing["filename"])
    try:
        if path.is_file():
            path.unlink()
    except OSError as exc:
        CHAT_LOGGER.warning("could not remove %s: %s", path, exc)
    return MessageResponse(message="Document deleted")


@app.get("/documents/{document_id}/file")
def get_document_file(
    document_id: int,
    db: Database = Depends(get_db),
    upload_dir: Path = Depends(get_upload_dir),
):
    row = db.get_document(document_id)
    if not row:
        raise HTTPException(status_code=404, detail="Document not found")
    path = upload_dir / str(row["filename"])
    if not path.is_file():
        raise HTTPException(status_code=404, detail="source file not found")
    return FileResponse(path=path, filename=str(row["original_name"]))


@app.get("/settings", response_model=SettingsResponse)
def get_settings(db: Database = Depends(get_db)) -> SettingsResponse:
    row = db.get_setting(GREETING_KEY)
    if not row:
        return SettingsResponse(
            greeting_message=db.default_greeting,
            updated_by=db.default_updated_by,
            last_updated=_utc_now(),
        )
    return SettingsResponse(
        greeting_message=row["setting_value"],
        updated_by=row["updated_by"],
        last_updated=row["last_updated"],
    )


@app.post("/settings", response_model=SaveSettingsResponse)
def save_settings(req: SaveSettingsRequest, db: Database = Depends(get_db)) -> SaveSettingsResponse:
    greeting = (req.greeting_message or "").strip()
    if not greeting:
        raise HTTPException(status_code=400, detail="Greeting message is required")
    if len(greeting) > GREETING_MAX_CHARS:
        raise HTTPException(status_code=400, detail=f"Greeting message must be {GREETING_MAX_CHARS} characters or less")
    last_updated = db.set_setting(GREETING_KEY, greeting, req.updated_by)
    return SaveSettingsResponse(success=True, message="Settings updated successfully", last_updated=last_updated)


@app.get("/template-questions", response_model=TemplateQuestionsResponse)
def list_template_questions(db: Database = Depends(get_db)) -> TemplateQuestionsResponse:
    questions = [_template_question(r) for r in db.list_template_questions()]
    return TemplateQuestionsResponse(questions=questions, total=len(questions))


@app.post("/template-questions", response_model=SuccessResponse)
def create_template_question(req: TemplateQuestionRequest, db: Database = Depends(get_db)) -> SuccessResponse:
    question, answer = _require_question_and_answer(req)
    db.create_template_question(question, answer, req.updated_by)
    return SuccessResponse(success=True, message="Template question created successfully")


@app.put("/template-questions/{question_id}", response_model=SuccessResponse)
def update_template_question(
    question_id: int, req: TemplateQuestionRequest, db: Database = Depends(get_db)
) -> SuccessResponse:
    question, answer = _require_question_and_answer(req)
    if not db.update_template_question(question_id, question, answer, req.updated_by):
        raise HTTPException(status_code=404, detail="Template question not found")
    return SuccessResponse(success=True, message="Template question updated successfully")


@app.delete("/template-questions/{question_id}", response_model=SuccessResponse)
def delete_template_question(question_id: int, db: Database = Depends(get_db)) -> SuccessResponse:
    if not db.deactivate_template_question(question_id):
        raise HTTPException(status_code=404, detail="Template question not found")
    return SuccessResponse(success=True, message="Template question deleted successfully")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("docchat.main:app", host=settings.host, port=settings.port)
