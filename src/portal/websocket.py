"""
Portal WebSocket server using FastAPI.

Main portal orchestrator that delegates to the router and controllers.
- Async/await for all I/O operations
- Timeout handling for idle connections
- Structured logging with elapsed_ms
- Single responsibility: WebSocket protocol handling
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState

from adapters.base import GenerativeGateway, LiveEventKind
from common.chat_store import JsonFileChatStore
from common.config import Config
from common.errors import PortalError
from common.logging import TimedLogger, get_logger
from common.models import WebSocketMessage, WebSocketResponse
from controllers.capture import MicrophoneDevice
from controllers.live_lounge import LiveLoungeController
from portal.connection_manager import ConnectionManager
from portal.media_handler import MediaHandler
from router.message_types import RequestType, RouterRequest
from router.request_router import RequestRouter, StoreFactory, catalog_payload

logger = get_logger(__name__)


class WebSocketMicrophone(MicrophoneDevice):
    """Microphone fed by binary PCM frames arriving on a WebSocket."""

    name = "websocket_microphone"

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.closed = False

    async def open(self) -> None:
        if self.websocket.client_state != WebSocketState.CONNECTED:
            raise PortalError("WebSocket is not connected")

    async def close(self) -> None:
        self.closed = True

    async def frames(self) -> AsyncIterator[bytes]:
        while not self.closed:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                return
            if message.get("bytes"):
                yield message["bytes"]
            elif message.get("text") == "stop":
                return


class PortalGateway:
    """FastAPI portal that orchestrates connections and routing."""

    def __init__(
        self,
        config: Config,
        gateway: Optional[GenerativeGateway] = None,
        store_factory: Optional[StoreFactory] = None,
        startup_health_check: bool = False,
    ):
        self.config = config
        self.startup_health_check = startup_health_check
        self.app = FastAPI(
            title="Seleste Academic Portal", version="0.1.0", lifespan=self._lifespan
        )
        self.connection_manager = ConnectionManager()
        self.media_handler = MediaHandler(max_file_size=config.portal.max_upload_size)

        if gateway is None:
            # Imported lazily so tests with a fake gateway never need credentials
            from adapters.gemini_adapter import GeminiGateway

            gateway = GeminiGateway(config.genai, config.video_polling)
        self.gateway = gateway

        if store_factory is None:
            store_config = config.chat_store

            def store_factory() -> JsonFileChatStore:
                return JsonFileChatStore(Path(store_config.data_dir), store_config.storage_key)

        self.router = RequestRouter(config, gateway, store_factory, self.media_handler)

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        if self.startup_health_check:
            await self._startup_health_checks()
        yield
        await self.router.shutdown()

    async def _startup_health_checks(self) -> None:
        """
        Check the generative service on the serving event loop before
        accepting connections. Fail fast if it is unreachable.

        Raises:
            PortalError: If the health check fails
        """
        logger.info(event="startup_health_checks_begin")

        if not await self.gateway.health_check():
            logger.critical(
                event="startup_failed",
                reason="Generative service health check failed",
                message="Cannot start without a reachable generative service (fail-fast policy)",
            )
            raise PortalError("Generative service health check failed")

        logger.info(
            event="startup_health_checks_passed", message="All startup checks passed successfully"
        )

    def _setup_routes(self) -> None:
        """Setup FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                component_health = await self.router.health_check()
                overall_status = "healthy" if all(component_health.values()) else "unhealthy"
                health_data = {
                    "status": overall_status,
                    "active_connections": self.connection_manager.get_connection_count(),
                    "components": component_health,
                }
                status_code = 200 if overall_status == "healthy" else 503
                return JSONResponse(health_data, status_code=status_code)

            except Exception as e:
                logger.error(event="health_check_failed", error=str(e))
                return JSONResponse(
                    {
                        "status": "error",
                        "error": str(e),
                        "message": "Health check failed - system may be unavailable",
                    },
                    status_code=503,
                )

        @self.app.get("/catalog")
        async def catalog():
            """Course catalog grouped by faculty."""
            return catalog_payload()

        @self.app.websocket("/ws/portal")
        async def portal_endpoint(websocket: WebSocket):
            """Main WebSocket endpoint."""
            await self._handle_websocket_connection(websocket)

        @self.app.websocket("/ws/live")
        async def live_endpoint(websocket: WebSocket):
            """Real-time voice endpoint: PCM frames in, audio frames and status out."""
            await self._handle_live_connection(websocket)

    async def _handle_websocket_connection(self, websocket: WebSocket) -> None:
        """Handle a new WebSocket connection."""
        connection_id = str(uuid.uuid4())
        tasks: Set[asyncio.Task] = set()

        try:
            await self.connection_manager.connect(websocket, connection_id)
            self.router.open_session(connection_id)

            # Handle incoming messages
            await self._message_loop(websocket, connection_id, tasks)

        except WebSocketDisconnect:
            logger.info(
                event="client_disconnect",
                message="WebSocket client disconnected",
                connection_id=connection_id,
            )
        except Exception as e:
            logger.error(
                event="connection_error",
                message="WebSocket connection error",
                connection_id=connection_id,
                error=str(e),
            )
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self.router.close_session(connection_id)
            self.connection_manager.disconnect(connection_id)

    async def _message_loop(
        self, websocket: WebSocket, connection_id: str, tasks: Set[asyncio.Task]
    ) -> None:
        """Main message handling loop for a WebSocket connection."""
        timeout = self.config.portal.connection_timeout
        while True:
            try:
                # Receive message with timeout
                message_data = await asyncio.wait_for(websocket.receive_text(), timeout=timeout)
            except asyncio.TimeoutError:
                if tasks:
                    # Long-running requests keep the connection alive
                    continue
                logger.warning(
                    event="connection_timeout",
                    message="WebSocket connection timeout",
                    connection_id=connection_id,
                    timeout_seconds=timeout,
                )
                break
            except WebSocketDisconnect:
                break

            message = await self._parse_message(message_data, connection_id)
            if message is None:
                continue

            # Each request runs on its own so a cancel can arrive mid-stream
            task = asyncio.create_task(self._route_to_router(message, connection_id))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

    async def _parse_message(
        self, message_data: str, connection_id: str
    ) -> Optional[WebSocketMessage]:
        """Parse an incoming message and acknowledge it."""
        try:
            message = WebSocketMessage.model_validate_json(message_data)
            request_type = RequestType(message.action)
        except ValueError as e:
            logger.error(
                event="message_parse_error",
                message="Failed to parse WebSocket message",
                connection_id=connection_id,
                error=str(e),
                raw_length=len(message_data),
            )
            error_response = WebSocketResponse(
                request_id="parse_error", status="error", error=f"Invalid message format: {str(e)}"
            )
            await self.connection_manager.send_to_connection(connection_id, error_response)
            return None

        logger.info(
            event="message_received",
            message="Processing WebSocket message",
            connection_id=connection_id,
            action=request_type.value,
            request_id=message.request_id,
        )

        # Send processing acknowledgment
        ack_response = WebSocketResponse(request_id=message.request_id, status="processing")
        await self.connection_manager.send_to_connection(connection_id, ack_response)
        return message

    async def _route_to_router(self, message: WebSocketMessage, connection_id: str) -> None:
        """Route message to router and stream responses back to client."""
        router_request = RouterRequest(
            request_id=message.request_id,
            request_type=RequestType(message.action),
            payload=message.payload,
            connection_id=connection_id,
        )

        response_count = 0
        try:
            with TimedLogger(
                logger,
                "message_processed",
                connection_id=connection_id,
                request_id=message.request_id,
            ):
                async for response in self.router.process_request(router_request):
                    response_count += 1
                    await self.connection_manager.send_to_connection(connection_id, response)

        except Exception as e:
            logger.error(
                event="router_processing_failed",
                message="Router processing failed",
                connection_id=connection_id,
                error=str(e),
            )
            error_response = WebSocketResponse(
                request_id=message.request_id,
                status="error",
                error=f"Router processing failed: {str(e)}",
            )
            await self.connection_manager.send_to_connection(connection_id, error_response)
        finally:
            logger.info(
                event="router_processing_complete",
                connection_id=connection_id,
                request_id=message.request_id,
                total_responses=response_count,
            )

    async def _handle_live_connection(self, websocket: WebSocket) -> None:
        """Run one live lounge conversation over ``websocket``."""
        await websocket.accept()
        lounge = LiveLoungeController(self.gateway, voice=websocket.query_params.get("voice"))
        microphone = WebSocketMicrophone(websocket)

        try:
            async for event in lounge.run(microphone):
                if event.kind == LiveEventKind.AUDIO and event.audio is not None:
                    await websocket.send_bytes(event.audio.data)
                else:
                    await websocket.send_json({"type": event.kind.value, "text": event.text})
        except WebSocketDisconnect:
            logger.info(event="live_client_disconnect")
        except PortalError as e:
            logger.warning(event="live_session_failed", error=str(e), error_type=type(e).__name__)
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.send_json({"type": "error", "text": str(e)})
        finally:
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.close()


def create_portal_app(
    config: Config,
    gateway: Optional[GenerativeGateway] = None,
    store_factory: Optional[StoreFactory] = None,
    startup_health_check: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI portal application."""
    portal = PortalGateway(config, gateway, store_factory, startup_health_check)
    return portal.app
