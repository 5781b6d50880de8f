"""
Advisor chat view.

History is loaded from the injected store at construction and written back
after every change, including each streamed fragment of the reply. Writes
run in a worker thread and are awaited in order.
"""

import asyncio
from typing import AsyncGenerator, List, Optional

from adapters.base import GenerativeGateway
from common.cancellation import CancellationToken
from common.chat_store import ChatHistoryStore
from common.entities import ChatMessage, Role
from common.logging import get_logger
from common.stream_accumulator import StreamAccumulator, StreamState
from prompts.builder import build_chat_prompt

logger = get_logger(__name__)

CHAT_ERROR = "ERROR: Advisor connection lost. Please verify your neural link."


class ChatController:
    def __init__(self, gateway: GenerativeGateway, store: ChatHistoryStore):
        self.gateway = gateway
        self.store = store
        self.messages: List[ChatMessage] = store.load()
        self.busy = False

    def snapshot(self) -> List[ChatMessage]:
        return [message.model_copy(deep=True) for message in self.messages]

    async def _persist(self) -> None:
        # File stores block; keep the write off the event loop
        await asyncio.to_thread(self.store.save, self.snapshot())

    async def send(
        self,
        text: str,
        *,
        web_grounding: bool = False,
        maps_grounding: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncGenerator[List[ChatMessage], None]:
        """
        Ask the advisor ``text`` and yield the message list as the reply grows.

        Blank input, or a send while a reply is still streaming, is ignored.
        """
        question = (text or "").strip()
        if not question or self.busy:
            return

        self.busy = True
        reply = ChatMessage(role=Role.MODEL, text="")
        try:
            self.messages.append(ChatMessage(role=Role.USER, text=question))
            self.messages.append(reply)
            await self._persist()
            yield self.snapshot()

            request = build_chat_prompt(
                question, web_grounding=web_grounding, maps_grounding=maps_grounding
            )
            stream = self.gateway.stream_text(request, cancel=cancel)
            accumulator = StreamAccumulator()
            async for partial in accumulator.consume(
                stream, error_message=CHAT_ERROR, cancel=cancel
            ):
                if accumulator.state != StreamState.STREAMING:
                    continue
                reply.text = partial
                if stream.references:
                    reply.grounding_references = list(stream.references)
                await self._persist()
                yield self.snapshot()

            if stream.references and reply.text:
                reply.grounding_references = list(stream.references)

            if accumulator.state == StreamState.FAILED:
                # Keep a partial reply and report the failure as its own message
                if reply.text:
                    self.messages.append(ChatMessage(role=Role.MODEL, text=CHAT_ERROR))
                else:
                    reply.text = CHAT_ERROR
                await self._persist()
                yield self.snapshot()
            elif accumulator.state == StreamState.CANCELLED and not reply.text:
                self.messages.remove(reply)
                await self._persist()
                yield self.snapshot()

            logger.info(
                event="chat_reply_finished",
                state=accumulator.state.value,
                fragments=accumulator.fragment_count,
                references=len(stream.references),
            )
        finally:
            self.busy = False

    def clear(self) -> None:
        """Empty the conversation in memory and in storage."""
        self.messages = []
        self.store.clear()
