"""Try-id propagation across message frames (STOMP-like envelopes).

Inbound frames: the try id is taken from the frame (a reply or callback
coming back from a downstream participant) or generated when the frame
carries the sampling marker, then installed for the handling of that frame.

Outbound frames: the ambient try id, or failing that the id already present
on the frame, is stamped into at most one outbound frame per unit of work so
a subscriber can correlate the asynchronous reply with the original call.

Envelopes are immutable. Every header change produces a new Envelope, so a
frame that another thread may be sending concurrently is never mutated.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tryit.foundation.errors import InvalidTryIdError
from tryit.runtime.context import Scope, TraceHandle, TryContext
from tryit.runtime.observability.logging import get_logger

if TYPE_CHECKING:
    from .sampling import Sampler

T = TypeVar("T")

log = get_logger("tryit.propagation")

# Internal (non-wire) header keys holding the scope to release after send
INBOUND_SCOPE_HEADER = "tryit.inbound_scope"
OUTBOUND_SCOPE_HEADER = "tryit.outbound_scope"

PUBLISHER_DESTINATION = "/queue/try"


class FrameCommand(StrEnum):
    CONNECT = "CONNECT"
    SEND = "SEND"
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"
    MESSAGE = "MESSAGE"
    DISCONNECT = "DISCONNECT"


@dataclass(frozen=True, slots=True)
class Envelope:
    """Immutable message frame.

    Attributes:
        payload: Frame body
        command: Frame command; brokers may leave it unset on broadcasts
        destination: Target destination
        subscription_id: Subscription the frame is delivered on
        session_id: Transport session
        message_id: Broker-assigned message id
        native_headers: Wire headers (multi-valued, first value wins on read)
        headers: Internal, non-wire headers
    """

    payload: bytes | str | None = None
    command: FrameCommand | None = None
    destination: str | None = None
    subscription_id: str | None = None
    session_id: str | None = None
    message_id: str | None = None
    native_headers: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    headers: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))

    def first_native_header(self, name: str) -> str | None:
        values = self.native_headers.get(name)
        return values[0] if values else None

    def with_native_header(self, name: str, value: str) -> Envelope:
        """New envelope with name set to a single value; everything else is kept."""
        return replace(self, native_headers=MappingProxyType({**self.native_headers, name: (value,)}))

    def with_header(self, name: str, value: object) -> Envelope:
        return replace(self, headers=MappingProxyType({**self.headers, name: value}))

    def with_command(self, command: FrameCommand) -> Envelope:
        return replace(self, command=command)

    def flat_native_headers(self) -> dict[str, str]:
        """First value of each wire header."""
        return {k: v[0] for k, v in self.native_headers.items() if v}

    def payload_text(self) -> str | None:
        if self.payload is None:
            return None
        return self.payload.decode("utf-8", errors="replace") if isinstance(self.payload, bytes) else str(self.payload)


def _parse_frame_id(env: Envelope, header: str, direction: str) -> TraceHandle | None:
    """Try id carried on the frame, or None. A malformed id is logged and ignored."""
    raw = env.first_native_header(header)
    if raw is None:
        return None
    try:
        return TraceHandle.parse(raw)
    except InvalidTryIdError:
        log.warning("ignoring malformed try id on frame", direction=direction, raw_try_id=raw)
        return None


def _release(env: Envelope, key: str) -> None:
    if isinstance(scope := env.headers.get(key), Scope):
        scope.close()


# ─────────────────────────────────────────────────────────────────────────────
# Publisher notification
# ─────────────────────────────────────────────────────────────────────────────


class TryDispatchMessage(BaseModel):
    """Sent to the publishing session when its SEND frame was sampled."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    try_id: str
    destination: str | None = None
    payload: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    requested_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class SessionRegistration:
    session_id: str
    message: TryDispatchMessage


class SessionRegistry:
    """Try id -> publishing session. Thread-safe."""

    __slots__ = ("_registrations", "_lock")

    def __init__(self) -> None:
        self._registrations: dict[str, SessionRegistration] = {}
        self._lock = threading.Lock()

    def register(self, try_id: str, registration: SessionRegistration) -> None:
        with self._lock:
            self._registrations[try_id] = registration

    def find(self, try_id: str) -> SessionRegistration | None:
        with self._lock:
            return self._registrations.get(try_id)

    def remove(self, try_id: str) -> SessionRegistration | None:
        with self._lock:
            return self._registrations.pop(try_id, None)

    def remove_by_session_id(self, session_id: str) -> int:
        """Drop every mapping of a disconnected session; returns how many were dropped."""
        with self._lock:
            stale = [k for k, v in self._registrations.items() if v.session_id == session_id]
            for k in stale:
                del self._registrations[k]
        if stale:
            log.debug("dropped try mappings for session", session_id=session_id, count=len(stale))
        return len(stale)

    def on_disconnect(self, env: Envelope) -> None:
        if env.session_id:
            self.remove_by_session_id(env.session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._registrations)


# (session_id, destination, message)
SendToUser = Callable[[str, str, TryDispatchMessage], None]


@dataclass(slots=True)
class PublisherNotifier:
    """Tells a publisher which try id its sampled SEND was assigned."""

    send: SendToUser | None
    registry: SessionRegistry = field(default_factory=SessionRegistry)
    destination: str = PUBLISHER_DESTINATION

    def notify(self, handle: TraceHandle, env: Envelope) -> TryDispatchMessage | None:
        if env.session_id is None:
            log.debug("no session id, publisher not notified", notified_try_id=str(handle))
            return None
        if self.send is None:
            log.warning("no message sender configured, publisher not notified", session_id=env.session_id)
            return None
        message = TryDispatchMessage(try_id=str(handle), destination=env.destination,
                                     payload=env.payload_text(), headers=env.flat_native_headers())
        self.registry.register(str(handle), SessionRegistration(env.session_id, message))
        self.send(env.session_id, self.destination, message)
        return message


# ─────────────────────────────────────────────────────────────────────────────
# Interceptors
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class InboundFrameInterceptor:
    """Installs the try context for the handling of one inbound frame.

    Example:
        >>> stamped = inbound.pre_send(frame)
        >>> try:
        ...     dispatch(stamped)
        ... finally:
        ...     inbound.after_send_completion(stamped, sent=True)
    """

    sampler: Sampler
    notifier: PublisherNotifier | None = None

    def pre_send(self, env: Envelope) -> Envelope:
        if env.command is None:
            return env
        marked = self.sampler.is_marked(env.first_native_header(self.sampler.header_name))
        handle = _parse_frame_id(env, self.sampler.try_id_header, "inbound")
        if handle is None and marked:
            handle = TraceHandle.new()
        if handle is None:
            return env
        if marked:
            self.sampler.register(handle)
        out = env.with_header(INBOUND_SCOPE_HEADER, TryContext.set(handle))
        if marked and env.command is FrameCommand.SEND and self.notifier is not None:
            self.notifier.notify(handle, env)
        return (out.with_native_header(self.sampler.try_id_header, str(handle))
                   .with_header(self.sampler.try_id_header, str(handle)))

    def after_send_completion(self, env: Envelope, sent: bool = True, error: BaseException | None = None) -> None:
        _release(env, INBOUND_SCOPE_HEADER)

    def intercept(self, env: Envelope, handler: Callable[[Envelope], T]) -> T:
        """pre_send, run handler with the context installed, then release."""
        stamped = self.pre_send(env)
        try:
            result = handler(stamped)
        except BaseException as e:
            self.after_send_completion(stamped, sent=False, error=e)
            raise
        self.after_send_completion(stamped, sent=True)
        return result


@dataclass(slots=True)
class OutboundFrameInterceptor:
    """Stamps the try id into the first outbound frame of a unit of work."""

    try_id_header: str = "X-Try-Id"

    def pre_send(self, env: Envelope) -> Envelope:
        if (handle := TryContext.get()) is None:
            if (handle := _parse_frame_id(env, self.try_id_header, "outbound")) is None:
                return env
            env = env.with_header(OUTBOUND_SCOPE_HEADER, TryContext.set(handle))
        if not TryContext.claim_outbound():
            log.debug("outbound try id already sent for this unit of work")
            return env
        if env.command is None:
            # Encoders require a command; broker broadcasts may not set one
            env = env.with_command(FrameCommand.MESSAGE)
        return (env.with_native_header(self.try_id_header, str(handle))
                   .with_header(self.try_id_header, str(handle)))

    def after_send_completion(self, env: Envelope, sent: bool = True, error: BaseException | None = None) -> None:
        _release(env, OUTBOUND_SCOPE_HEADER)
        if not sent:
            log.warning("outbound frame not sent", session_id=env.session_id,
                        error=str(error) if error else "none")

    def intercept(self, env: Envelope, send: Callable[[Envelope], T]) -> T:
        stamped = self.pre_send(env)
        try:
            result = send(stamped)
        except BaseException as e:
            self.after_send_completion(stamped, sent=False, error=e)
            raise
        self.after_send_completion(stamped, sent=True)
        return result
