"""One conversation with the streaming chat endpoint."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable
from types import TracebackType

import httpx
from loguru import logger

from chatstream.accumulator import ReplyAccumulator
from chatstream.bus import Consumer, NotificationBus, Subscription
from chatstream.config import Settings, load_settings
from chatstream.decoder import StreamDecoder
from chatstream.errors import ConfigurationError, TransportError, TurnCancelledError
from chatstream.logging_utils import bind_turn
from chatstream.models import (
    ConversationContext,
    Notification,
    ReplyState,
    TurnRequest,
    TurnState,
    new_message_id,
)


class ChatSession:
    """Run turns against the endpoint and publish every reply snapshot.

    Turns on one session must not overlap: the continuation state is read
    when a turn starts and written when it completes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        consumers: Iterable[Consumer] = (),
        bus: NotificationBus | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self.bus = bus or NotificationBus(buffer_size=self._settings.bus_buffer_size)
        for consumer in consumers:
            self.bus.subscribe(consumer)
        self._client = client
        self._owns_client = client is None
        self._context = ConversationContext()
        self._user_agent = self._settings.user_agent
        self._authorization = ""
        if self._settings.access_token:
            self.set_credential(self._settings.access_token)
        self._message_id = ""
        self._state = TurnState.IDLE

    async def __aenter__(self) -> ChatSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.bus.aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # state accessors

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def context(self) -> ConversationContext:
        return self._context.copy()

    @property
    def conversation_id(self) -> str | None:
        return self._context.conversation_id

    @conversation_id.setter
    def conversation_id(self, value: str | None) -> None:
        self._context.conversation_id = value or None

    @property
    def parent_message_id(self) -> str | None:
        return self._context.parent_message_id

    @parent_message_id.setter
    def parent_message_id(self, value: str | None) -> None:
        self._context.parent_message_id = value or None

    @property
    def user_agent(self) -> str:
        return self._user_agent

    @user_agent.setter
    def user_agent(self, value: str) -> None:
        self._user_agent = value

    @property
    def authorization(self) -> str:
        return self._authorization

    def set_credential(self, token: str) -> None:
        self._authorization = f"Bearer {token}"

    @property
    def message_id(self) -> str:
        """Message id of the most recent turn request."""
        return self._message_id

    def identifiers(self) -> tuple[str, str | None, str | None]:
        return self._message_id, self._context.conversation_id, self._context.parent_message_id

    def reset(self) -> None:
        self._context = ConversationContext()

    def subscribe(self, consumer: Consumer | None = None, *, name: str | None = None) -> Subscription:
        return self.bus.subscribe(consumer, name=name)

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": self._authorization,
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Accept-Language": self._settings.accept_language,
            "User-Agent": self._user_agent,
            "Referer": self._settings.referer,
            "X-Openai-Assistant-App-Id": "",
        }

    # turns

    async def talk(
        self,
        question: str,
        *,
        cancel: asyncio.Event | None = None,
        conversation_id: str | None = None,
        parent_message_id: str | None = None,
    ) -> ReplyState:
        """Run one turn and return its terminal reply.

        Raises ``TurnCancelledError`` when ``cancel`` is set before or during
        the turn and ``TransportError`` when the request or stream fails.
        """
        self._transition(TurnState.IDLE)
        if cancel is not None and cancel.is_set():
            turn_id = self._begin_turn()
            self._cancelled(turn_id, ReplyAccumulator())
            raise TurnCancelledError("turn cancelled before start", turn_id=turn_id)

        endpoint = self._settings.require_endpoint()
        if not self._authorization:
            raise ConfigurationError("access_token is not configured")

        turn_id = self._begin_turn()
        accumulator = ReplyAccumulator()

        request = TurnRequest.for_question(
            question,
            message_id=turn_id,
            conversation_id=conversation_id or self._context.conversation_id,
            parent_message_id=parent_message_id or self._context.parent_message_id or new_message_id(),
            model=self._settings.model,
        )
        if cancel is None:
            return await self._run_turn(turn_id, endpoint, request, accumulator)

        turn = asyncio.ensure_future(self._run_turn(turn_id, endpoint, request, accumulator))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({turn, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not turn.done():
                turn.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await turn
        if not turn.cancelled():
            return turn.result()
        if not accumulator.current.end:
            self._cancelled(turn_id, accumulator)
        raise TurnCancelledError("turn cancelled", turn_id=turn_id)

    async def _run_turn(
        self, turn_id: str, endpoint: str, request: TurnRequest, accumulator: ReplyAccumulator
    ) -> ReplyState:
        self._transition(TurnState.SENDING)
        logger.info(
            "session.turn.start turn_id={} conversation_id={} parent_message_id={}",
            turn_id,
            request.conversation_id,
            request.parent_message_id,
        )
        try:
            async with asyncio.timeout(self._settings.turn_timeout_seconds):
                async with self._http().stream(
                    "POST", endpoint, headers=self.headers(), json=request.to_payload()
                ) as response:
                    if response.status_code != httpx.codes.OK:
                        await response.aread()
                        logger.info(
                            "session.turn.bad_status turn_id={} status={} body={!r}",
                            turn_id,
                            response.status_code,
                            response.text[:200],
                        )
                        raise TransportError(
                            f"unexpected response status {response.status_code}",
                            turn_id=turn_id,
                            status_code=response.status_code,
                        )
                    self._transition(TurnState.STREAMING)
                    reply = await self._consume(turn_id, response, accumulator)
        except TransportError as exc:
            self._fail(turn_id, accumulator, str(exc))
            raise
        except httpx.HTTPError as exc:
            error = TransportError(f"{type(exc).__name__}: {exc}", turn_id=turn_id)
            self._fail(turn_id, accumulator, str(error))
            raise error from exc
        except TimeoutError as exc:
            error = TransportError(
                f"turn exceeded {self._settings.turn_timeout_seconds}s deadline", turn_id=turn_id
            )
            self._fail(turn_id, accumulator, str(error))
            raise error from exc
        except asyncio.CancelledError:
            if not accumulator.current.end:
                self._cancelled(turn_id, accumulator)
            raise

        self._transition(TurnState.COMPLETED)
        if reply.conversation_id:
            self._context.conversation_id = reply.conversation_id
        if reply.message_id:
            self._context.parent_message_id = reply.message_id
        logger.info(
            "session.turn.completed turn_id={} frames={} error={}",
            turn_id,
            accumulator.frames,
            reply.error,
        )
        return reply

    async def _consume(self, turn_id: str, response: httpx.Response, accumulator: ReplyAccumulator) -> ReplyState:
        decoder = StreamDecoder(response.aiter_lines())
        async for frame in decoder:
            self.bus.publish(Notification.for_reply(turn_id, accumulator.apply(frame)))
        reply = accumulator.finish(decoder.last_line)
        self.bus.publish(Notification.for_reply(turn_id, reply))
        return reply

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._settings.turn_timeout_seconds, connect=self._settings.connect_timeout_seconds
                ),
            )
            self._owns_client = True
        return self._client

    def _begin_turn(self) -> str:
        turn_id = new_message_id()
        self._message_id = turn_id
        bind_turn(turn_id)
        return turn_id

    def _transition(self, state: TurnState) -> None:
        if state is self._state:
            return
        logger.debug("session.state {} -> {}", self._state, state)
        self._state = state

    def _fail(self, turn_id: str, accumulator: ReplyAccumulator, error: str) -> None:
        self._transition(TurnState.FAILED)
        logger.warning("session.turn.failed turn_id={} error={}", turn_id, error)
        if accumulator.current.end:
            return
        self.bus.publish(Notification.for_reply(turn_id, accumulator.fail(error)))

    def _cancelled(self, turn_id: str, accumulator: ReplyAccumulator) -> None:
        self._transition(TurnState.FAILED)
        logger.info("session.turn.cancelled turn_id={}", turn_id)
        self.bus.publish(Notification.for_reply(turn_id, accumulator.fail("turn cancelled")))
