import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Set

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .agent import create_llm_client
from .chat_service import ChatService, LLMClientFactory
from .config import Settings, load_settings
from .events import QueueTransport, SessionEventChannel
from .history import sessions_to_yaml, yaml_to_sessions
from .model_catalog import ModelCatalog
from .session_manager import SessionManager
from .session_store import JsonFileSessionStore, SessionStore
from .tool_connections import SessionFactory
from .tool_providers import ToolProviderRegistry

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ChatRequest(BaseModel):
    sessionId: str
    message: str
    modelId: str


class CreateSessionRequest(BaseModel):
    title: Optional[str] = None
    modelId: Optional[str] = None


class UpdateSessionRequest(BaseModel):
    title: Optional[str] = None
    modelId: Optional[str] = None


class ImportHistoryRequest(BaseModel):
    yamlContent: str


def create_app(
    settings: Optional[Settings] = None,
    session_store: Optional[SessionStore] = None,
    providers: Optional[ToolProviderRegistry] = None,
    llm_client_factory: Optional[LLMClientFactory] = None,
    tool_session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    """Build the chat server application."""
    settings = settings or load_settings()
    models = ModelCatalog(default_model_id=settings.default_model)
    session_manager = SessionManager(
        session_store or JsonFileSessionStore(settings.sessions_dir), models
    )
    chat_service = ChatService(
        session_manager,
        models,
        providers if providers is not None else ToolProviderRegistry.from_env(),
        settings,
        llm_client_factory=llm_client_factory or create_llm_client,
        tool_session_factory=tool_session_factory,
    )

    app = FastAPI(title="AI Agent Chat")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.sessions = session_manager
    app.state.models = models
    app.state.chat_service = chat_service

    # Turns run as their own tasks so a client disconnect does not cut cleanup short
    running_turns: Set[asyncio.Task] = set()

    def start_turn(session_id: str, message: str, model_id: str) -> StreamingResponse:
        transport = QueueTransport()
        channel = SessionEventChannel(transport)

        async def run_turn():
            try:
                await chat_service.stream_chat_response(session_id, message, model_id, channel)
            finally:
                transport.close()

        task = asyncio.create_task(run_turn())
        running_turns.add(task)
        task.add_done_callback(running_turns.discard)
        return StreamingResponse(
            transport.frames(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    @app.get("/api/chat")
    async def chat_stream(
        sessionId: Optional[str] = None,
        modelId: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if not sessionId or not modelId:
            return JSONResponse(
                status_code=400,
                content={"error": "Missing required query parameters: sessionId, modelId"},
            )
        if message:
            return start_turn(sessionId, message, modelId)

        # No message: only acknowledge the connection
        transport = QueueTransport()
        await SessionEventChannel(transport).emit_frame(
            "thinking", {"content": "Connection established"}
        )
        transport.close()
        return StreamingResponse(
            transport.frames(), media_type="text/event-stream", headers=SSE_HEADERS
        )

    @app.post("/api/chat")
    async def chat(request: ChatRequest):
        return start_turn(request.sessionId, request.message, request.modelId)

    @app.get("/api/sessions")
    async def list_sessions():
        return session_manager.list_sessions()

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        session = session_manager.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return session

    @app.post("/api/sessions")
    async def create_session(request: CreateSessionRequest):
        return session_manager.create_session(request.title, request.modelId)

    @app.put("/api/sessions/{session_id}")
    async def update_session(session_id: str, request: UpdateSessionRequest):
        session = session_manager.update_session(session_id, request.title, request.modelId)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return session

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str):
        return {"success": session_manager.delete_session(session_id)}

    @app.get("/api/models")
    async def list_models():
        return [model.to_dict() for model in models.list_models()]

    # Declared before /api/models/{model_id} so "default" is not taken as an id
    @app.get("/api/models/default")
    async def default_model():
        return models.get_default_model().to_dict()

    @app.get("/api/models/{model_id:path}")
    async def get_model(model_id: str):
        model = models.get_model_by_id(model_id)
        if model is None:
            raise HTTPException(status_code=404, detail=f"Model not found: {model_id}")
        return model.to_dict()

    @app.get("/api/history/export")
    async def export_history():
        return {"yaml": sessions_to_yaml(session_manager.list_sessions())}

    @app.post("/api/history/import")
    async def import_history(request: ImportHistoryRequest):
        try:
            count = session_manager.import_sessions(yaml_to_sessions(request.yamlContent))
        except ValueError as e:
            logger.error(f"Error importing history: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        return {"success": True, "count": count}

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    return app


app = create_app()
