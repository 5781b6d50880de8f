"""
Live lounge view: a real-time voice conversation.

The microphone and the live session are scoped resources: both are released
when the conversation ends, fails or is cancelled.
"""

import asyncio
import contextlib
from typing import AsyncGenerator, Optional

from adapters.base import GenerativeGateway, LiveEvent, LiveEventKind, LiveSession
from common.logging import get_logger
from controllers.capture import MicrophoneDevice, acquire
from prompts.builder import build_live_prompt

logger = get_logger(__name__)

CONNECTING = "Connecting to Seleste Live Neural Hub..."
CONNECTED = "Uplink Active. Speak now."
DISCONNECTED = "Uplink closed."


def _status(text: str) -> LiveEvent:
    return LiveEvent(kind=LiveEventKind.STATUS, text=text)


class LiveLoungeController:
    def __init__(self, gateway: GenerativeGateway, voice: Optional[str] = None):
        self.gateway = gateway
        self.voice = voice
        self.active = False
        self.log: list = []

    def _record(self, event: LiveEvent) -> LiveEvent:
        if event.kind == LiveEventKind.STATUS:
            self.log.append(event.text)
        return event

    async def _pump(self, microphone: MicrophoneDevice, session: LiveSession) -> None:
        frames = 0
        async for frame in microphone.frames():
            await session.send_audio(frame)
            frames += 1
        logger.info(event="live_microphone_drained", frames=frames)

    async def _events(
        self, session: LiveSession, pump: "asyncio.Task[None]"
    ) -> AsyncGenerator[LiveEvent, None]:
        """Session events until the service closes or the microphone stops."""
        iterator = session.receive().__aiter__()
        while not pump.done():
            pending = asyncio.ensure_future(iterator.__anext__())
            await asyncio.wait({pending, pump}, return_when=asyncio.FIRST_COMPLETED)
            if not pending.done():
                pending.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await pending
                break
            try:
                event = pending.result()
            except StopAsyncIteration:
                break
            yield event

    async def run(self, microphone: MicrophoneDevice) -> AsyncGenerator[LiveEvent, None]:
        """
        Hold a conversation until the microphone or the session ends.

        Yields status notices plus every audio, transcript and interruption
        event from the service.
        """
        if self.active:
            return

        self.active = True
        self.log = []
        yield self._record(_status(CONNECTING))
        try:
            async with acquire(microphone) as mic, self.gateway.live_session(
                build_live_prompt(self.voice)
            ) as session:
                yield self._record(_status(CONNECTED))
                pump = asyncio.create_task(self._pump(mic, session))
                try:
                    async for event in self._events(session, pump):
                        yield self._record(event)
                    if pump.done():
                        # Surface a failed microphone pump
                        pump.result()
                finally:
                    pump.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await pump
        finally:
            self.active = False
            self.log.append(DISCONNECTED)
            logger.info(event="live_session_ended")
