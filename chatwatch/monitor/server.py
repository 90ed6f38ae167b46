"""
Monitor Server

FastAPI server receiving chat bridge webhooks and exposing operator actions.

Endpoints:
- POST /messages: Chat bridge webhook endpoint
- GET /health: Health check
- GET /stats: Question and classifier statistics
- GET /questions: List questions (filter by status, chat)
- GET /questions/{question_id}: Question with its answer candidates
- POST /questions/{question_id}/resolve: Mark answered by hand
- POST /questions/{question_id}/dismiss: Dismiss
- POST /questions/{question_id}/reopen: Reopen
- POST /candidates/{candidate_id}/accept: Accept a candidate as the answer
- GET /approvals: Detected approvals
- GET /mentions: Group messages addressing the tracked user

Pipeline:
1. Receive webhook event
2. Verify signature and parse with the bridge handler
3. Classify with the regex classifier, open or answer questions
4. Queue for the classification service, reconcile when it answers
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.config import ChatwatchConfig, ensure_directories, load_config
from ..common.llm_client import LLMClient
from ..common.schemas import QuestionStatus
from .classification_queue import ClassificationQueue
from .handlers import BridgeHandler
from .intent_classifier import IntentClassifier, TrackedIdentity
from .lifecycle import QuestionLifecycle
from .pipeline import MessageMonitor
from .store import CandidateNotFoundError, JsonQuestionStore, QuestionNotFoundError

logger = logging.getLogger("chatwatch.monitor.server")


# Global state
config: Optional[ChatwatchConfig] = None
store: Optional[JsonQuestionStore] = None
lifecycle: Optional[QuestionLifecycle] = None
queue: Optional[ClassificationQueue] = None
monitor: Optional[MessageMonitor] = None
bridge_handler: Optional[BridgeHandler] = None


def _build_llm_client(cfg: ChatwatchConfig) -> LLMClient:
    model = cfg.llm.openai_model if cfg.llm.provider == "openai" else cfg.llm.anthropic_model
    return LLMClient(
        provider=cfg.llm.provider,
        model=model,
        anthropic_api_key=cfg.llm.anthropic_api_key or None,
        openai_api_key=cfg.llm.openai_api_key or None,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, store, lifecycle, queue, monitor, bridge_handler

    logger.info("Starting up...")
    load_dotenv()
    ensure_directories()

    config = load_config()
    if not config.identity.display_name:
        logger.warning("No tracked display name configured; directed-question detection uses mention ids only")

    store = JsonQuestionStore(config.server.store_path)
    stats = store.get_stats()
    logger.info("Question store: %d open, %d total", stats["open"], stats["total"])

    lifecycle = QuestionLifecycle(store, tracking=config.tracking)
    queue = ClassificationQueue.from_config(config.queue, _build_llm_client(config))
    classifier = IntentClassifier(TrackedIdentity.from_config(config.identity))
    monitor = MessageMonitor(classifier, lifecycle, queue)

    bridge_handler = BridgeHandler(signing_secret=config.server.webhook_secret)
    if not config.server.webhook_secret:
        logger.warning("No webhook secret configured; bridge signatures are not verified")

    logger.info("Ready to receive messages")

    yield

    logger.info("Shutting down...")
    await queue.close()


app = FastAPI(
    title="chatwatch Monitor",
    description="Question tracking for group chats",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class ResolveRequest(BaseModel):
    """Manual resolve request"""
    answered_by: Optional[str] = None


class DismissRequest(BaseModel):
    """Manual dismiss request"""
    dismissed_by: Optional[str] = None


def _require_lifecycle() -> QuestionLifecycle:
    if not lifecycle:
        raise HTTPException(status_code=503, detail="Monitor not initialized")
    return lifecycle


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "chatwatch",
        "initialized": monitor is not None,
        "ai_enabled": queue.enabled if queue else False,
        "open_questions": store.get_stats()["open"] if store else 0,
    }


@app.post("/messages")
async def bridge_messages(
    request: Request,
    background_tasks: BackgroundTasks,
    x_chatwatch_signature: Optional[str] = Header(None),
    x_chatwatch_timestamp: Optional[str] = Header(None),
):
    """
    Handle chat bridge webhook events.

    Messages are processed in the background; the bridge only waits for
    the acknowledgement.
    """
    if not bridge_handler or not monitor:
        raise HTTPException(status_code=503, detail="Handler not initialized")

    body = await request.body()

    if not bridge_handler.verify_signature(
        body,
        x_chatwatch_signature or "",
        x_chatwatch_timestamp or "",
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")

    message = bridge_handler.parse_event(data)
    if message and bridge_handler.should_process(message):
        background_tasks.add_task(monitor.process_message, message)

    return JSONResponse({"ok": True})


@app.get("/questions")
async def list_questions(status: Optional[QuestionStatus] = None, chat_id: Optional[str] = None):
    """List questions, oldest first"""
    lc = _require_lifecycle()
    questions = lc.store.list_questions(status=status, chat_id=chat_id)
    return {
        "count": len(questions),
        "items": [q.model_dump(mode="json") for q in questions],
    }


@app.get("/questions/{question_id}")
async def get_question(question_id: str):
    """Get a question and its answer candidates"""
    lc = _require_lifecycle()
    question = lc.store.get_question(question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")

    return {
        "question": question.model_dump(mode="json"),
        "candidates": [c.model_dump(mode="json") for c in lc.store.list_candidates(question_id)],
    }


@app.post("/questions/{question_id}/resolve")
async def resolve_question(question_id: str, submission: Optional[ResolveRequest] = None):
    lc = _require_lifecycle()
    try:
        question = lc.resolve(question_id, answered_by=submission.answered_by if submission else None)
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")
    return question.model_dump(mode="json")


@app.post("/questions/{question_id}/dismiss")
async def dismiss_question(question_id: str, submission: Optional[DismissRequest] = None):
    lc = _require_lifecycle()
    try:
        question = lc.dismiss(question_id, dismissed_by=submission.dismissed_by if submission else None)
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")
    return question.model_dump(mode="json")


@app.post("/questions/{question_id}/reopen")
async def reopen_question(question_id: str):
    lc = _require_lifecycle()
    try:
        question = lc.reopen(question_id)
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")
    return question.model_dump(mode="json")


@app.post("/candidates/{candidate_id}/accept")
async def accept_candidate(candidate_id: str):
    lc = _require_lifecycle()
    try:
        question = lc.accept_candidate(candidate_id)
    except CandidateNotFoundError:
        raise HTTPException(status_code=404, detail="Candidate not found")
    except QuestionNotFoundError:
        raise HTTPException(status_code=404, detail="Question not found")
    return question.model_dump(mode="json")


@app.get("/approvals")
async def list_approvals():
    lc = _require_lifecycle()
    approvals = lc.store.list_approvals()
    return {
        "count": len(approvals),
        "items": [a.model_dump(mode="json") for a in approvals],
    }


@app.get("/mentions")
async def list_mentions(chat_id: Optional[str] = None):
    """Mentions of the tracked user, oldest first"""
    lc = _require_lifecycle()
    mentions = lc.store.list_mentions(chat_id=chat_id)
    return {
        "count": len(mentions),
        "items": [m.model_dump(mode="json") for m in mentions],
    }


@app.get("/stats")
async def get_stats():
    """Get monitor statistics"""
    stats = {
        "service": "chatwatch",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if store:
        stats["questions"] = store.get_stats()
        stats["approvals"] = len(store.list_approvals())
        stats["mentions"] = len(store.list_mentions())

    if queue:
        stats["classifier"] = queue.get_stats()

    return stats


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the monitor server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    load_dotenv()
    config = load_config()
    port = config.server.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "chatwatch.monitor.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
