"""
Request router: dispatches portal requests to the view controllers.

- Async I/O for all operations
- Structured logging with elapsed_ms
- Single responsibility per class
- One cancellation token per in-flight request
"""

from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.catalog import UNIVERSITY, courses_by_faculty
from common.chat_store import ChatHistoryStore
from common.config import Config
from common.entities import Asset, ChatMessage
from common.errors import PortalError
from common.logging import TimedLogger, get_logger
from common.models import Chunk, ChunkType, WebSocketResponse, media_chunk
from common.stream_accumulator import StreamState
from controllers.chat import ChatController
from controllers.course import CourseController
from controllers.drafts import DraftResult
from controllers.lab_report import LabReportController
from controllers.media_lab import STATUS_MESSAGES, MediaLabController, MediaTab
from controllers.studio import StudioController
from controllers.thesis import ThesisController
from portal.media_handler import MediaHandler
from router.message_types import RequestType, RouterRequest

logger = get_logger(__name__)

StoreFactory = Callable[[], ChatHistoryStore]

# Requests that are answered immediately and never need cancelling
_INSTANT = (
    RequestType.CHAT_HISTORY,
    RequestType.CHAT_CLEAR,
    RequestType.CATALOG,
    RequestType.STUDIO_UPLOAD,
    RequestType.STUDIO_SELECT,
    RequestType.STUDIO_CLEAR,
    RequestType.CANCEL,
)


def catalog_payload() -> Dict[str, Any]:
    """Course catalog grouped by faculty, ready for JSON."""
    return {
        "university": UNIVERSITY,
        "faculties": [
            {
                "faculty": faculty.value,
                "courses": [course.model_dump(mode="json") for course in courses],
            }
            for faculty, courses in courses_by_faculty().items()
        ],
    }


def _messages_payload(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    return [message.model_dump(mode="json", exclude_none=True) for message in messages]


def _asset_payload(asset: Asset) -> Dict[str, Any]:
    return {
        "id": asset.id,
        "status": asset.status.value,
        "error": asset.error_message,
        "original": asset.original_data.to_data_url(),
        "edited": asset.edited_data.to_data_url() if asset.edited_data else None,
    }


class PortalSession:
    """The set of view controllers owned by one browser connection."""

    def __init__(self, gateway: GenerativeGateway, store: ChatHistoryStore):
        self.chat = ChatController(gateway, store)
        self.course = CourseController(gateway)
        self.studio = StudioController(gateway)
        self.lab_report = LabReportController(gateway)
        self.thesis = ThesisController(gateway)
        self.media_lab = MediaLabController(gateway)
        self.in_flight: Dict[str, CancellationToken] = {}

    def studio_state(self, assets: Optional[List[Asset]] = None) -> Dict[str, Any]:
        studio = self.studio
        assets = studio.assets if assets is None else assets
        return {
            "assets": [_asset_payload(asset) for asset in assets],
            "selected_index": studio.selected_index,
            "directive": studio.directive,
            "running": studio.queue.is_running,
            "summary": studio.queue.summary(),
            "error": studio.error,
            "suggestions": studio.suggestions(),
        }

    async def close(self) -> None:
        for token in self.in_flight.values():
            token.cancel("Connection closed")
        self.in_flight.clear()
        await self.studio.stop_camera()


class RequestRouter:
    """
    Core router for handling portal requests.

    Responsibilities:
    - Keep one PortalSession per connection
    - Route requests based on type
    - Stream controller output back as WebSocketResponses
    - Cancel in-flight requests on demand
    """

    def __init__(
        self,
        config: Config,
        gateway: GenerativeGateway,
        store_factory: StoreFactory,
        media_handler: Optional[MediaHandler] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.store_factory = store_factory
        self.media_handler = media_handler or MediaHandler(config.portal.max_upload_size)
        self.sessions: Dict[str, PortalSession] = {}

        logger.info(
            event="router_initialized",
            message="Router initialized",
            gateway=type(gateway).__name__,
            max_upload_size=self.media_handler.max_file_size,
        )

    def open_session(self, connection_id: str) -> PortalSession:
        session = self.sessions.get(connection_id)
        if session is None:
            session = PortalSession(self.gateway, self.store_factory())
            self.sessions[connection_id] = session
            logger.info(event="portal_session_opened", connection_id=connection_id)
        return session

    async def close_session(self, connection_id: str) -> None:
        session = self.sessions.pop(connection_id, None)
        if session is not None:
            await session.close()
            logger.info(event="portal_session_closed", connection_id=connection_id)

    async def process_request(
        self, router_request: RouterRequest
    ) -> AsyncGenerator[WebSocketResponse, None]:
        """
        Process a request and yield streaming responses.

        Args:
            router_request: The request to process

        Yields:
            WebSocketResponse objects for streaming back to client
        """
        session = self.open_session(router_request.connection_id)
        request_id = router_request.request_id
        request_type = router_request.request_type

        token = CancellationToken()
        if request_type not in _INSTANT:
            session.in_flight[request_id] = token

        with TimedLogger(
            logger,
            "request_processed",
            request_id=request_id,
            request_type=request_type.value,
        ):
            try:
                handler = self._handlers[request_type]
                async for response in handler(self, session, router_request, token):
                    yield response
            except (ValueError, LookupError, PortalError) as e:
                # Bad input or a gateway failure the controller does not absorb
                logger.warning(
                    event="request_rejected",
                    request_id=request_id,
                    request_type=request_type.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                yield WebSocketResponse(request_id=request_id, status="error", error=str(e))
            except Exception as e:
                logger.error(
                    event="request_failed",
                    message="Request processing failed",
                    request_id=request_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                yield WebSocketResponse(
                    request_id=request_id,
                    status="error",
                    error=f"Request processing failed: {str(e)}",
                )
            finally:
                session.in_flight.pop(request_id, None)

    def _complete(self, request: RouterRequest) -> WebSocketResponse:
        return WebSocketResponse(request_id=request.request_id, status="complete")

    def _chunk(self, request: RouterRequest, chunk: Chunk) -> WebSocketResponse:
        chunk.sequence_id = request.request_id
        return WebSocketResponse(request_id=request.request_id, status="chunk", chunk=chunk)

    def _cancelled(self, request: RouterRequest, reason: Optional[str]) -> WebSocketResponse:
        return WebSocketResponse(
            request_id=request.request_id, status="cancelled", error=reason or "Cancelled"
        )

    async def _handle_chat(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        payload = request.payload
        async for messages in session.chat.send(
            payload.get("text", ""),
            web_grounding=bool(payload.get("web_grounding", False)),
            maps_grounding=bool(payload.get("maps_grounding", False)),
            cancel=token,
        ):
            yield self._chunk(
                request,
                Chunk(
                    type=ChunkType.STATE,
                    data=messages[-1].text if messages else "",
                    metadata={"messages": _messages_payload(messages)},
                ),
            )
        if token.cancelled:
            yield self._cancelled(request, token.reason)
        else:
            yield self._complete(request)

    async def _handle_chat_history(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        yield self._chunk(
            request,
            Chunk(
                type=ChunkType.STATE,
                metadata={
                    "messages": _messages_payload(session.chat.snapshot()),
                    "busy": session.chat.busy,
                },
            ),
        )
        yield self._complete(request)

    async def _handle_chat_clear(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        session.chat.clear()
        yield self._chunk(request, Chunk(type=ChunkType.STATE, metadata={"messages": []}))
        yield self._complete(request)

    async def _handle_catalog(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        yield self._chunk(request, Chunk(type=ChunkType.METADATA, metadata=catalog_payload()))
        yield self._complete(request)

    async def _handle_lesson(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        final_state = StreamState.IDLE
        async for snapshot in session.course.synthesize_lesson(
            request.payload.get("course_id", ""),
            request.payload.get("lesson_id", ""),
            cancel=token,
        ):
            final_state = snapshot.state
            yield self._chunk(
                request,
                Chunk(
                    type=ChunkType.TEXT,
                    data=snapshot.content,
                    metadata={
                        "progress": snapshot.progress,
                        "state": snapshot.state.value,
                        "error": snapshot.error,
                    },
                ),
            )
        if final_state == StreamState.CANCELLED:
            yield self._cancelled(request, token.reason)
        else:
            yield self._complete(request)

    async def _handle_slides(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        slides = await session.course.generate_slides(
            request.payload.get("course_id", ""),
            request.payload.get("lesson_id", ""),
            cancel=token,
        )
        yield self._chunk(
            request,
            Chunk(
                type=ChunkType.METADATA,
                metadata={"slides": [slide.model_dump(mode="json") for slide in slides]},
            ),
        )
        yield self._complete(request)

    def _draft_responses(self, request: RouterRequest, result: DraftResult):
        if result.cancelled:
            return [self._cancelled(request, result.error)]
        chunk = Chunk(
            type=ChunkType.TEXT,
            data=result.text,
            metadata={"failed": result.failed, "error": result.error},
        )
        return [self._chunk(request, chunk), self._complete(request)]

    async def _handle_lab_report(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        payload = request.payload
        result = await session.lab_report.generate(
            payload.get("experiment_code", ""),
            payload.get("student_name", ""),
            payload.get("registration_number", ""),
            cancel=token,
        )
        for response in self._draft_responses(request, result):
            yield response

    async def _handle_thesis(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        payload = request.payload
        kwargs = {"faculty": payload["faculty"]} if payload.get("faculty") else {}
        result = await session.thesis.generate(
            payload.get("topic", ""), keywords=payload.get("keywords", ""), cancel=token, **kwargs
        )
        for response in self._draft_responses(request, result):
            yield response

    async def _handle_media(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        payload = request.payload
        tab = MediaTab(payload.get("tab", MediaTab.VIDEO.value))
        directive = payload.get("directive", "")
        source = None
        if payload.get("source"):
            source = self.media_handler.decode_upload(payload["source"])

        problem = session.media_lab.validate(tab, directive, source)
        if problem is None:
            yield self._chunk(
                request, Chunk(type=ChunkType.STATE, data=STATUS_MESSAGES[tab])
            )

        result = await session.media_lab.run(
            tab,
            directive,
            aspect_ratio=payload.get("aspect_ratio"),
            image_size=payload.get("image_size", "1K"),
            source=source,
            voice=payload.get("voice"),
            cancel=token,
        )
        if result.status == "cancelled":
            yield self._cancelled(request, result.error)
            return
        if result.status == "error":
            yield self._chunk(
                request,
                Chunk(type=ChunkType.ERROR, data=result.error or "", metadata={"tab": tab.value}),
            )
        elif result.mime_type == "text/plain":
            yield self._chunk(
                request, Chunk(type=ChunkType.TEXT, data=result.result, metadata={"tab": tab.value})
            )
        else:
            yield self._chunk(request, media_chunk(result.media, tab=tab.value))
        yield self._complete(request)

    async def _handle_studio_upload(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        uploads = request.payload.get("images") or []
        if isinstance(uploads, str):
            uploads = [uploads]
        # Validate everything before adding anything
        payloads = [self.media_handler.decode_upload(item, ("image",)) for item in uploads]
        for payload in payloads:
            session.studio.add_upload(payload)
        yield self._chunk(
            request, Chunk(type=ChunkType.STATE, metadata=session.studio_state())
        )
        yield self._complete(request)

    async def _handle_studio_select(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        session.studio.select(int(request.payload.get("index", -1)))
        yield self._chunk(
            request, Chunk(type=ChunkType.STATE, metadata=session.studio_state())
        )
        yield self._complete(request)

    async def _handle_studio_run(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        async for assets in session.studio.run_batch(
            request.payload.get("directive", ""), cancel=token
        ):
            yield self._chunk(
                request, Chunk(type=ChunkType.STATE, metadata=session.studio_state(assets))
            )
        if token.cancelled:
            yield self._cancelled(request, token.reason)
        else:
            yield self._chunk(
                request, Chunk(type=ChunkType.STATE, metadata=session.studio_state())
            )
            yield self._complete(request)

    async def _handle_studio_clear(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        await session.studio.clear()
        yield self._chunk(
            request, Chunk(type=ChunkType.STATE, metadata=session.studio_state())
        )
        yield self._complete(request)

    async def _handle_cancel(
        self, session: PortalSession, request: RouterRequest, token: CancellationToken
    ) -> AsyncGenerator[WebSocketResponse, None]:
        target = request.payload.get("target_request_id", "")
        target_token = session.in_flight.get(target)
        if target_token is not None:
            target_token.cancel("Cancelled")
        logger.info(
            event="request_cancel",
            request_id=request.request_id,
            target_request_id=target,
            found=target_token is not None,
        )
        yield self._chunk(
            request,
            Chunk(
                type=ChunkType.METADATA,
                metadata={"target_request_id": target, "cancelled": target_token is not None},
            ),
        )
        yield self._complete(request)

    _handlers = {
        RequestType.CHAT: _handle_chat,
        RequestType.CHAT_HISTORY: _handle_chat_history,
        RequestType.CHAT_CLEAR: _handle_chat_clear,
        RequestType.CATALOG: _handle_catalog,
        RequestType.LESSON: _handle_lesson,
        RequestType.SLIDES: _handle_slides,
        RequestType.LAB_REPORT: _handle_lab_report,
        RequestType.THESIS: _handle_thesis,
        RequestType.MEDIA: _handle_media,
        RequestType.STUDIO_UPLOAD: _handle_studio_upload,
        RequestType.STUDIO_SELECT: _handle_studio_select,
        RequestType.STUDIO_RUN: _handle_studio_run,
        RequestType.STUDIO_CLEAR: _handle_studio_clear,
        RequestType.CANCEL: _handle_cancel,
    }

    async def health_check(self) -> Dict[str, bool]:
        """Check health of the generative service."""
        try:
            healthy = await self.gateway.health_check()
        except Exception as e:
            logger.error(event="gateway_health_check_failed", error=str(e))
            healthy = False
        return {"gateway": healthy}

    async def shutdown(self) -> None:
        """Close every open session."""
        for connection_id in list(self.sessions):
            await self.close_session(connection_id)
        logger.info(event="router_shutdown", message="Router shutdown complete")
