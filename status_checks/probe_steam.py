"""
Source engine A2S_INFO query over UDP.

The exchange is driven by `A2SInfoSession`, a small state machine fed one datagram at a time:
a challenge reply (type 0x41) makes it resend the query with the 4 challenge bytes appended,
an info reply (type 0x49) or any other reply finishes it.
"""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import elapsed_ms
from status_checks.targets import is_valid_target


DEFAULT_STEAM_PORT = 27015
DEFAULT_STEAM_TIMEOUT_SECONDS = 5.0

A2S_INFO_QUERY = b"\xff\xff\xff\xff" + b"T" + b"Source Engine Query\x00"

RESPONSE_CHALLENGE = 0x41
RESPONSE_INFO = 0x49


@dataclass(frozen=True)
class ServerInfo:
    server_name: str
    map: str
    players: int
    max_players: int


def _read_cstring(data: bytes, offset: int) -> tuple[str, int]:
    end = data.index(b"\x00", offset)
    return data[offset:end].decode("utf-8", errors="replace"), end + 1


def parse_info_response(data: bytes) -> ServerInfo:
    """
    Layout after the 4-byte header and type byte: protocol(1), name, map, folder, game
    (all NUL-terminated), app id (2), players (1), max players (1).
    """
    offset = 6
    server_name, offset = _read_cstring(data, offset)
    map_name, offset = _read_cstring(data, offset)
    _folder, offset = _read_cstring(data, offset)
    _game, offset = _read_cstring(data, offset)
    offset += 2
    if offset + 1 >= len(data):
        raise ValueError("A2S_INFO response truncated before player counts")
    return ServerInfo(
        server_name=server_name,
        map=map_name,
        players=data[offset],
        max_players=data[offset + 1],
    )


class SessionState(enum.Enum):
    AWAITING_CHALLENGE = "awaiting_challenge"
    AWAITING_INFO = "awaiting_info"
    DONE = "done"


class A2SInfoSession:
    def __init__(self) -> None:
        self.state = SessionState.AWAITING_CHALLENGE
        self.result: Observation | None = None

    def initial_packet(self) -> bytes:
        return A2S_INFO_QUERY

    def feed(self, packet: bytes, *, response_time: int) -> bytes | None:
        """
        Consume one datagram. Returns a packet to send back, or None once a result is set.
        """
        if self.state is SessionState.DONE:
            return None

        kind = packet[4] if len(packet) > 4 else None

        if kind == RESPONSE_CHALLENGE:
            self.state = SessionState.AWAITING_INFO
            return A2S_INFO_QUERY + packet[5:9]

        if kind == RESPONSE_INFO:
            try:
                info = parse_info_response(packet)
            except ValueError:
                self._finish(Observation(status=OPERATIONAL, response_time=response_time, message="Server online (parse error)"))
                return None
            self._finish(
                Observation(
                    status=OPERATIONAL,
                    response_time=response_time,
                    message=f"{info.server_name} - {info.players}/{info.max_players} players on {info.map}",
                    extra={
                        "serverName": info.server_name,
                        "map": info.map,
                        "players": info.players,
                        "maxPlayers": info.max_players,
                    },
                )
            )
            return None

        self._finish(Observation(status=OPERATIONAL, response_time=response_time, message="Server online"))
        return None

    def fail(self, message: str, *, response_time: int) -> None:
        if self.state is not SessionState.DONE:
            self._finish(Observation(status=DOWN, response_time=response_time, message=message))

    def _finish(self, result: Observation) -> None:
        self.state = SessionState.DONE
        self.result = result


class _A2SProtocol(asyncio.DatagramProtocol):
    def __init__(self, session: A2SInfoSession, started: float) -> None:
        self.session = session
        self.started = started
        self.done: asyncio.Future[Observation] = asyncio.get_running_loop().create_future()
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport) -> None:
        self.transport = transport
        transport.sendto(self.session.initial_packet())

    def datagram_received(self, data: bytes, addr) -> None:
        reply = self.session.feed(data, response_time=elapsed_ms(self.started))
        if reply is not None and self.transport is not None:
            self.transport.sendto(reply)
        self._maybe_resolve()

    def error_received(self, exc: Exception) -> None:
        self.session.fail(str(exc) or type(exc).__name__, response_time=elapsed_ms(self.started))
        self._maybe_resolve()

    def _maybe_resolve(self) -> None:
        if self.session.result is not None and not self.done.done():
            self.done.set_result(self.session.result)


async def _query(host: str, port: int, started: float) -> Observation:
    loop = asyncio.get_running_loop()
    session = A2SInfoSession()
    # Name resolution happens here, inside the caller's timeout.
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: _A2SProtocol(session, started),
        remote_addr=(host, port),
    )
    try:
        return await protocol.done
    finally:
        transport.close()


async def check_steam(
    *,
    host: str,
    port: int = DEFAULT_STEAM_PORT,
    timeout_seconds: float = DEFAULT_STEAM_TIMEOUT_SECONDS,
) -> Observation:
    if not is_valid_target(host):
        return Observation(status=DOWN, response_time=0, message="Invalid host format")

    started = time.perf_counter()
    try:
        return await asyncio.wait_for(_query(host, port, started), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Server timeout")
    except OSError as exc:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message=str(exc) or type(exc).__name__)
