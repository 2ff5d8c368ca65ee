import logging
from typing import List, Literal, Optional

import httpx
from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from asset_storage import RawImage
from config import Settings, get_settings
from database import get_engine, init_db, load_recent_detections
from detection_pipeline import DetectionPipeline, build_pipeline
from errors import (
    ChatRequestError,
    DetectionCancelledError,
    DetectionInProgressError,
    GeminiNotConfiguredError,
    ImageDecodeError,
    RecordPersistError,
)
from recommendation_engine import CHAT_MAX_OUTPUT_TOKENS, VOICE_MAX_OUTPUT_TOKENS, ChatTurn, ask_agronomist

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("plantscan-api")

settings = get_settings()

app = FastAPI(title="PlantScan Disease Detection API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Pydantic Data Models ---
class DetectionResponse(BaseModel):
    id: str
    image_url: str
    created_at: str
    disease_name: str
    confidence: float
    severity: str
    recommendations: str


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str
    history: List[ChatMessage] = []
    voice: bool = False


class ChatResponse(BaseModel):
    reply: str
    history: List[ChatMessage]


# --- Dependencies ---
def get_app_settings() -> Settings:
    return settings


def get_db_engine():
    return get_engine(settings.database_url)


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_pipeline(request: Request) -> DetectionPipeline:
    return request.app.state.pipeline


# --- Lifecycle ---
@app.on_event("startup")
async def startup_services():
    """Ensure the database and the shared HTTP client are ready when the server starts."""
    try:
        engine = get_db_engine()
        init_db(engine)
    except Exception:
        logger.exception("Failed to initialize database on startup")
        raise
    app.state.http_client = httpx.AsyncClient()
    app.state.pipeline = build_pipeline(settings, app.state.http_client, engine)
    if not settings.gemini_configured:
        logger.warning("GEMINI_API_KEY is not set, recommendations will use the fallback text")
    if not settings.storage_configured:
        logger.warning("Supabase storage is not configured, images will be stored inline")


@app.on_event("shutdown")
async def shutdown_services():
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()


# --- API Endpoints ---
@app.get("/")
def read_root():
    """Health check endpoint."""
    return {"message": "PlantScan API is running smoothly!"}


@app.post("/api/detect", response_model=DetectionResponse)
async def detect_disease(
    request: Request,
    image: UploadFile = File(...),
    owner_id: Optional[str] = Form(None),
    x_session_id: Optional[str] = Header(None),
    pipeline: DetectionPipeline = Depends(get_pipeline),
):
    """Classify an uploaded plant photo. Anonymous when no owner_id is sent."""
    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="No image provided.")

    raw = RawImage(data=data, content_type=image.content_type, filename=image.filename)
    # Anonymous uploads without a session header run unguarded.
    session_key = x_session_id or owner_id

    try:
        record = await pipeline.run(
            raw,
            owner_id=owner_id,
            session_key=session_key,
            cancel_check=request.is_disconnected,
        )
    except DetectionInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RecordPersistError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except DetectionCancelledError as e:
        logger.info(f"Client disconnected: {e}")
        raise HTTPException(status_code=499, detail=str(e))
    except Exception as e:
        logger.exception("Unexpected error during detection")
        raise HTTPException(status_code=500, detail=str(e))

    return DetectionResponse(
        id=record.id,
        image_url=record.image_url,
        created_at=record.created_at.isoformat(),
        **record.to_result(),
    )


@app.get("/api/detections/{owner_id}", response_class=JSONResponse)
def list_detections(owner_id: str, limit: int = 5, engine=Depends(get_db_engine)):
    """The owner's most recent detections, newest first."""
    if limit < 1 or limit > 50:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 50")
    rows = load_recent_detections(owner_id, limit=limit, engine=engine)
    return JSONResponse(content=jsonable_encoder(rows))


@app.post("/api/chat", response_model=ChatResponse)
async def chat_with_agronomist(
    req: ChatRequest,
    app_settings: Settings = Depends(get_app_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """One chat turn. The client sends the full history and keeps the returned one."""
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty.")

    conversation = tuple(ChatTurn(m.role, m.content) for m in req.history)
    max_tokens = VOICE_MAX_OUTPUT_TOKENS if req.voice else CHAT_MAX_OUTPUT_TOKENS
    try:
        reply, updated = await ask_agronomist(conversation, req.message, app_settings, client, max_tokens)
    except GeminiNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ChatRequestError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return ChatResponse(
        reply=reply,
        history=[ChatMessage(role=t.role, content=t.content) for t in updated],
    )


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
