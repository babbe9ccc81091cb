"""
FastAPI server for the trigger-phrase voice agent.

Endpoints:
- GET /health: Health check
- GET /metrics: JSON metrics
- GET /config: Public (non-secret) trigger settings for the UI
- WS /ws: Client audio/control WebSocket (one session per connection)
"""

import asyncio
import sys

# Use uvloop for faster asyncio (Linux only)
try:
    import uvloop
    asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
except ImportError:
    pass  # uvloop not available on Windows

import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, Request
from fastapi.responses import JSONResponse
import structlog
import uvicorn

from src.trigger_agent.config import get_config, init_config, ConfigError

if TYPE_CHECKING:
    from src.trigger_agent.session import TriggerSession


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if log_level != "DEBUG" else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


logger = structlog.get_logger(__name__)


@dataclass
class ServerMetrics:
    """Server-wide counters; per-session figures are folded in when a session ends."""
    start_time: float = field(default_factory=time.time)
    total_sessions: int = 0
    active_sessions: int = 0
    responses: int = 0
    interrupts: int = 0
    realtime_errors: int = 0
    errors: int = 0

    def session_started(self) -> None:
        self.total_sessions += 1
        self.active_sessions += 1

    def session_ended(self, session: Optional["TriggerSession"]) -> None:
        self.active_sessions -= 1
        if session is None:
            return
        self.responses += session.coordinator.response_count
        self.interrupts += session.interrupts.interrupt_count
        self.realtime_errors += session.error_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self.start_time, 2),
            "total_sessions": self.total_sessions,
            "active_sessions": self.active_sessions,
            "responses": self.responses,
            "interrupts": self.interrupts,
            "realtime_errors": self.realtime_errors,
            "errors": self.errors,
        }


# Global metrics
metrics = ServerMetrics()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting trigger voice agent server...")

    try:
        config = init_config()
        configure_logging(config.log_level)
        logger.info("Server ready", port=config.port, realtime_model=config.openai_realtime_model)
    except ConfigError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)

    yield

    logger.info("Shutting down server...")


app = FastAPI(
    title="Trigger Voice Agent",
    description="Always-listening realtime voice agent that speaks only when triggered",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        content={
            "status": "healthy",
            "timestamp": time.time(),
            "active_sessions": metrics.active_sessions,
        }
    )


@app.get("/metrics")
async def get_metrics() -> JSONResponse:
    """Metrics endpoint."""
    return JSONResponse(content=metrics.to_dict())


@app.get("/config")
async def get_public_config() -> JSONResponse:
    """Trigger settings for the UI settings view (read-only, no secrets)."""
    config = get_config()
    return JSONResponse(
        content={
            "quickHintPhrase": config.quick_hint_phrase,
            "fullGuidancePhrase": config.full_guidance_phrase,
            "interruptPhrases": list(config.interrupt_phrases),
            "quickHintDuration": config.quick_hint_duration_seconds,
            "fullGuidanceDuration": config.full_guidance_duration_seconds,
        }
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """
    Client WebSocket endpoint.

    One trigger session per connection. Microphone audio and UI controls come in;
    agent audio, status and transcripts go out until either side stops.
    """
    await websocket.accept()
    metrics.session_started()

    log = logger.bind(session_id=uuid.uuid4().hex[:12])
    log.info("Client connected", active_sessions=metrics.active_sessions)

    # Deferred so /health and /config never import the websocket client
    from src.trigger_agent.bridge import create_bridge

    bridge = None

    async def send_message(message: str) -> None:
        try:
            await websocket.send_text(message)
        except Exception as e:
            log.warning("Client send failed", error=str(e))

    try:
        bridge = await create_bridge(send_message)

        while bridge.is_running:
            try:
                message = await websocket.receive_text()
            except WebSocketDisconnect:
                log.info("Client disconnected")
                break

            try:
                await bridge.handle_message(message)
            except Exception:
                log.exception("Client message handling failed")
                metrics.errors += 1

    except Exception as e:
        log.error("Session failed", error=str(e))
        metrics.errors += 1

    finally:
        if bridge:
            try:
                await bridge.stop()
            except Exception as e:
                log.error("Error stopping bridge", error=str(e))

        metrics.session_ended(bridge.session if bridge else None)
        log.info(
            "Session ended",
            active_sessions=metrics.active_sessions,
            mode=bridge.session.mode.value if bridge else None,
        )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
    )
    metrics.errors += 1

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


def main() -> None:
    """Run the server."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info("Starting server", port=config.port)

    uvicorn.run(
        "server.app:app",
        host="0.0.0.0",
        port=config.port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
