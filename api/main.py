"""FastAPI REST and WebSocket interface for a serial link.

Single-process, single-device lifecycle. The API plays the host role: it
starts one link worker, queues outbound messages and drains inbound ones.

Error mapping:
- InvalidConfigValue → 400
- Not connected → 503
- Other exceptions → 500
"""

import asyncio
import logging
import os
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path
from threading import RLock
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from serial_link_lib import worker
from serial_link_lib.discovery import list_port_names
from serial_link_lib.errors import InvalidConfigValue
from serial_link_lib.models import DataMessage, LinkConfig, LinkEvent, Message

# =============================================================================
# Environment Configuration
# =============================================================================

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "9150"))
DEFAULT_SERIAL_PORT = os.getenv("SERIAL_PORT", "/dev/ttyUSB0")
DEFAULT_SERIAL_BAUD = int(os.getenv("SERIAL_BAUD", "9600"))
DEFAULT_FRAMING = os.getenv("SERIAL_FRAMING", "line")
DEFAULT_DELIMITER = os.getenv("SERIAL_DELIMITER")
DEFAULT_RECONNECT_DELAY_MS = int(os.getenv("RECONNECT_DELAY_MS", "1000"))
DEFAULT_MAX_UNREAD_MESSAGES = int(os.getenv("MAX_UNREAD_MESSAGES", "100"))
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

# Seconds to wait for the worker thread on disconnect
JOIN_TIMEOUT_S = 5.0

API_VERSION = "0.1.0"
try:
    GIT_COMMIT = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], cwd=Path(__file__).parent.parent, stderr=subprocess.DEVNULL).decode().strip()
except Exception:
    GIT_COMMIT = "unknown"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_link: Optional[worker.LinkWorker] = None
_lock = RLock()  # Protects connect/disconnect


def _stop_link() -> bool:
    """Stop and join the current link worker, if any. Caller holds _lock.

    Returns:
        True if no worker is left running. A worker that did not exit in
        time keeps its handle so no second worker is started on its port.
    """
    global _link

    if _link is None:
        return True

    logger.info(f"Stopping link to {_link.config.port}...")
    _link.request_stop()
    if not _link.join(timeout=JOIN_TIMEOUT_S):
        logger.error(f"Link worker for {_link.config.port} is still running")
        return False

    _link = None
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration on startup, stop the link on shutdown."""
    logger.info("=" * 60)
    logger.info("Serial Link API started")
    logger.info(f"Version: {API_VERSION}")
    logger.info(f"Git Commit: {GIT_COMMIT}")
    logger.info(f"Host: {API_HOST}")
    logger.info(f"Port: {API_PORT}")
    logger.info(f"Default Serial Port: {DEFAULT_SERIAL_PORT}")
    logger.info(f"Default Serial Baud: {DEFAULT_SERIAL_BAUD}")
    logger.info(f"Default Framing: {DEFAULT_FRAMING}")
    logger.info(f"CORS Origins: {CORS_ORIGINS}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Serial Link API...")
    with _lock:
        _stop_link()
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Serial Link API",
    description="REST and WebSocket interface for a resilient serial device link",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_404_requests(request: Request, call_next):
    """Log all 404 responses to help debug missing routes."""
    response = await call_next(request)
    if response.status_code == 404:
        logger.warning(f"404 NOT FOUND: {request.method} {request.url.path} query={dict(request.query_params)}")
    return response

# =============================================================================
# Request/Response Models
# =============================================================================

class SendRequest(BaseModel):
    """Request body for POST /send. Exactly one field must be set."""
    text: Optional[str] = None
    hex: Optional[str] = None


class StatusResponse(BaseModel):
    """Response for GET /status."""
    running: bool
    connected: bool
    state: str
    port: Optional[str]
    framing: Optional[str]
    epoch: int
    inbound_pending: int
    outbound_pending: int
    dropped: int


class ConnectResponse(BaseModel):
    """Response for POST /connect."""
    status: str
    port: str
    framing: str


def message_to_json(message: Message) -> dict:
    """Convert an inbound message to its JSON form."""
    if isinstance(message, LinkEvent):
        return {"type": "event", "event": message.value}

    assert isinstance(message, DataMessage)
    if isinstance(message.payload, bytes):
        return {"type": "data", "hex": message.payload.hex()}
    return {"type": "data", "text": message.payload}


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(InvalidConfigValue)
async def invalid_config_handler(request, exc: InvalidConfigValue):
    """Map InvalidConfigValue to 400 Bad Request."""
    logger.error(f"InvalidConfigValue: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# =============================================================================
# Read-Only Endpoints
# =============================================================================

@app.get("/status", response_model=StatusResponse)
async def get_status():
    """Get current link status.

    Reports worker state, connection epoch and queue depths.
    """
    link = _link

    if link is None:
        return StatusResponse(
            running=False,
            connected=False,
            state="stopped",
            port=None,
            framing=None,
            epoch=0,
            inbound_pending=0,
            outbound_pending=0,
            dropped=0,
        )

    return StatusResponse(
        running=link.is_alive(),
        connected=link.is_connected,
        state=link.state.value,
        port=link.config.port,
        framing=link.config.framing,
        epoch=link.epoch,
        inbound_pending=len(link.queues.inbound),
        outbound_pending=len(link.queues.outbound),
        dropped=link.queues.inbound.dropped,
    )


@app.get("/messages")
async def get_messages(max_messages: int = Query(100, ge=1, le=1000, alias="max")):
    """Drain up to max_messages inbound messages (query parameter "max").

    Returns:
        {"messages": [...]} oldest first
    """
    link = _link
    if link is None:
        raise HTTPException(status_code=503, detail="Not connected")

    messages = []
    while len(messages) < max_messages:
        message = link.try_pop_inbound()
        if message is None:
            break
        messages.append(message_to_json(message))

    return {"messages": messages}


@app.get("/ports")
async def get_ports():
    """List serial ports present on this machine."""
    return {"ports": list_port_names()}


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@app.post("/connect", response_model=ConnectResponse)
async def connect(
    port: str = Query(DEFAULT_SERIAL_PORT, description="Serial port (e.g., /dev/ttyUSB0)"),
    baud: int = Query(DEFAULT_SERIAL_BAUD, description="Baud rate"),
    framing: Literal["line", "delimiter"] = Query(DEFAULT_FRAMING),
    delimiter: Optional[int] = Query(
        int(DEFAULT_DELIMITER) if DEFAULT_DELIMITER else None,
        description="Record terminator byte for delimiter framing",
    ),
    reconnect_delay_ms: int = Query(DEFAULT_RECONNECT_DELAY_MS),
    max_unread_messages: int = Query(DEFAULT_MAX_UNREAD_MESSAGES),
):
    """Start the link worker.

    The worker keeps trying to open the port in the background, so this
    succeeds even if the device is not plugged in yet.

    Raises:
        400: If already running or the configuration is invalid
    """
    global _link

    with _lock:
        if _link is not None:
            raise HTTPException(
                status_code=400,
                detail="Already connected. Disconnect first."
            )

        config = LinkConfig(
            port=port,
            baud=baud,
            framing=framing,
            delimiter=delimiter,
            reconnect_delay_ms=reconnect_delay_ms,
            max_unread_messages=max_unread_messages,
        )

        logger.info(f"Connecting to {port} at {baud} baud ({framing} framing)...")
        _link = worker.start(config)

        return ConnectResponse(status="connecting", port=port, framing=framing)


@app.post("/disconnect")
async def disconnect():
    """Stop the link worker, flushing queued messages and closing the port.

    Returns:
        {"status": "disconnected"}

    Raises:
        503: If the worker did not exit within JOIN_TIMEOUT_S
    """
    with _lock:
        if not _stop_link():
            raise HTTPException(
                status_code=503,
                detail="Link worker did not stop in time, try again"
            )
        return {"status": "disconnected"}


@app.post("/send")
async def send(request: SendRequest):
    """Queue a message for the device.

    Line framing takes {"text": "..."}; delimiter framing takes
    {"hex": "..."} including the delimiter byte.

    Raises:
        400: If the payload does not match the framing
        503: If not connected
    """
    link = _link
    if link is None:
        raise HTTPException(status_code=503, detail="Not connected")

    if (request.text is None) == (request.hex is None):
        raise HTTPException(status_code=400, detail="Provide exactly one of 'text' or 'hex'")

    if link.config.framing == "line":
        if request.text is None:
            raise HTTPException(status_code=400, detail="Line framing expects 'text'")
        try:
            link.push_outbound(request.text)
        except UnicodeEncodeError as e:
            raise HTTPException(status_code=400, detail=f"Cannot encode text: {e}")
    else:
        if request.hex is None:
            raise HTTPException(status_code=400, detail="Delimiter framing expects 'hex'")
        try:
            payload = bytes.fromhex(request.hex)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid hex: {request.hex!r}")
        link.push_outbound(payload)

    return {"status": "queued", "outbound_pending": len(link.queues.outbound)}


# =============================================================================
# WebSocket Stream
# =============================================================================

@app.websocket("/stream")
async def websocket_stream(websocket: WebSocket):
    """WebSocket endpoint pushing inbound messages as they arrive.

    Messages are consumed from the inbound queue, so they are not returned
    by GET /messages afterwards.
    """
    await websocket.accept()
    logger.info(f"WebSocket client connected: {websocket.client}")

    if _link is None:
        await websocket.send_json({"error": "Not connected"})
        await websocket.close()
        return

    try:
        while _link is not None:
            message = _link.try_pop_inbound()
            if message is not None:
                await websocket.send_json(message_to_json(message))
                continue

            # Idle: wait briefly, noticing client disconnects meanwhile
            try:
                incoming = await asyncio.wait_for(websocket.receive(), timeout=0.05)
            except asyncio.TimeoutError:
                continue
            if incoming["type"] == "websocket.disconnect":
                logger.info(f"WebSocket client disconnected: {websocket.client}")
                return

        await websocket.send_json({"type": "event", "event": "stopped"})
        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {websocket.client}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        try:
            await websocket.close()
        except Exception:
            pass


# =============================================================================
# Health Check
# =============================================================================

@app.get("/")
@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "service": "Serial Link API",
        "version": API_VERSION,
        "status": "online"
    }


@app.get("/version")
async def version():
    """Version tracking endpoint for debugging and compatibility checks."""
    return {
        "api": API_VERSION,
        "git": GIT_COMMIT,
        "status": "online"
    }
