from typing import Dict, Any, List, Literal, Optional
from datetime import date
import structlog
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from dayli_agent.application.container import AgentContainer
from dayli_agent.domain.models.context_snapshot import ConversationMessage
from dayli_agent.infrastructure.config import Settings
from dayli_agent.infrastructure.observability.logging import metrics_collector, setup_logging

logger = structlog.get_logger(__name__)


# --- Request/Response Models ---

class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    user_id: str = Field(min_length=1)
    messages: List[ChatMessage] = Field(min_length=1)
    viewing_date: Optional[date] = None


class ChatResponse(BaseModel):
    response: str
    plan: Optional[Dict[str, Any]] = None
    execution: Optional[Dict[str, Any]] = None
    needs_clarification: bool = False


# --- Application Factory ---

def create_app(container: Optional[AgentContainer] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application"""

    settings = settings or (container.settings if container else Settings.from_env())
    setup_logging(settings.log_level, settings.log_format, settings.service_name)

    app = FastAPI(
        title="dayli agent",
        description="Command understanding and execution for the dayli scheduling assistant",
        version="0.1.0",
    )
    app.state.container = container or AgentContainer(settings)

    @app.get("/health")
    async def health(request: Request) -> Dict[str, Any]:
        container: AgentContainer = request.app.state.container
        return {
            "status": "healthy",
            "capabilities": len(container.registry.names()),
            "cache": await container.cache.get_stats(),
            "metrics": metrics_collector.get_metrics_summary(),
        }

    @app.post("/api/v1/chat", response_model=ChatResponse)
    async def chat(body: ChatRequest, request: Request) -> ChatResponse:
        """Understand and execute the newest user message"""
        if not any(m.role == "user" for m in body.messages):
            raise HTTPException(status_code=422, detail="messages must contain a user message")

        container: AgentContainer = request.app.state.container
        history = [ConversationMessage(role=m.role, content=m.content) for m in body.messages]
        result = await container.pipeline.handle(body.user_id, history, body.viewing_date)

        return ChatResponse(
            response=result.response,
            plan=result.plan.model_dump(mode="json", by_alias=True) if result.plan else None,
            execution=result.execution.model_dump(mode="json") if result.execution else None,
            needs_clarification=result.needs_clarification
        )

    return app
