"""
Minecraft server list ping (handshake + status request over TCP).
"""

from __future__ import annotations

import asyncio
import enum
import json
import re
import time
from typing import Any

from status_checks.models import DOWN, OPERATIONAL, Observation
from status_checks.probe_http import elapsed_ms
from status_checks.targets import is_valid_target


DEFAULT_MINECRAFT_PORT = 25565
DEFAULT_MINECRAFT_TIMEOUT_SECONDS = 5.0

# Varint-encoded protocol version sent in the handshake.
PROTOCOL_VERSION = b"\xff\x05"
STATUS_REQUEST = b"\x01\x00"

_FORMAT_CODE_RE = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)


def encode_varint(value: int) -> bytes:
    value &= 0xFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int) -> tuple[int, int] | None:
    """
    Returns (value, next_offset), or None when the buffer ends mid-varint.
    """
    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            return None
        byte = data[offset]
        value |= (byte & 0x7F) << shift
        offset += 1
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 35:
            raise ValueError("varint too long")


def build_handshake(host: str, port: int) -> bytes:
    host_bytes = host.encode("utf-8")
    body = (
        b"\x00"
        + PROTOCOL_VERSION
        + encode_varint(len(host_bytes))
        + host_bytes
        + port.to_bytes(2, "big")
        + b"\x01"
    )
    return encode_varint(len(body)) + body


def decode_status_frame(buffer: bytes) -> dict[str, Any] | None:
    """
    Frame: packet length varint, packet id, JSON length varint, JSON bytes.
    Returns None until the whole JSON payload has arrived.
    """
    header = decode_varint(buffer, 0)
    if header is None:
        return None
    _packet_length, offset = header
    if offset >= len(buffer):
        return None
    offset += 1  # packet id
    json_len = decode_varint(buffer, offset)
    if json_len is None:
        return None
    length, offset = json_len
    if len(buffer) < offset + length:
        return None
    data = json.loads(buffer[offset : offset + length].decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("status payload is not a JSON object")
    return data


def strip_format_codes(text: str) -> str:
    return _FORMAT_CODE_RE.sub("", text).strip()


def extract_motd(description: Any) -> str:
    if isinstance(description, str):
        motd = description
    elif isinstance(description, dict):
        parts = [str(description.get("text") or "")]
        for run in description.get("extra") or []:
            if isinstance(run, dict):
                parts.append(str(run.get("text") or ""))
            elif isinstance(run, str):
                parts.append(run)
        motd = "".join(parts)
    else:
        motd = ""
    return strip_format_codes(motd) or "Minecraft Server"


class FrameState(enum.Enum):
    AWAITING_RESPONSE = "awaiting_response"
    ACCUMULATING_FRAME = "accumulating_frame"
    DONE = "done"


class StatusPingSession:
    def __init__(self) -> None:
        self.state = FrameState.AWAITING_RESPONSE
        self.buffer = b""
        self.status: dict[str, Any] | None = None

    def feed(self, chunk: bytes) -> bool:
        """
        Accumulate bytes; True once a complete status frame has been decoded.
        """
        if self.state is FrameState.DONE:
            return True
        self.buffer += chunk
        self.state = FrameState.ACCUMULATING_FRAME
        if len(self.buffer) <= 5:
            return False
        status = decode_status_frame(self.buffer)
        if status is None:
            return False
        self.status = status
        self.state = FrameState.DONE
        return True


def status_to_observation(status: dict[str, Any], *, response_time: int) -> Observation:
    players_obj = status.get("players") if isinstance(status.get("players"), dict) else {}
    version_obj = status.get("version") if isinstance(status.get("version"), dict) else {}
    players = players_obj.get("online") or 0
    max_players = players_obj.get("max") or 0
    version = version_obj.get("name") or "Unknown"
    motd = extract_motd(status.get("description"))
    return Observation(
        status=OPERATIONAL,
        response_time=response_time,
        message=f"{motd} - {players}/{max_players} ({version})",
        extra={"motd": motd, "players": players, "maxPlayers": max_players, "version": version},
    )


async def _ping(host: str, port: int) -> dict[str, Any]:
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(build_handshake(host, port))
        writer.write(STATUS_REQUEST)
        await writer.drain()

        session = StatusPingSession()
        while True:
            chunk = await reader.read(4096)
            if not chunk:
                raise ConnectionResetError("Connection closed before status response")
            if session.feed(chunk) and session.status is not None:
                return session.status
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def check_minecraft(
    *,
    host: str,
    port: int = DEFAULT_MINECRAFT_PORT,
    timeout_seconds: float = DEFAULT_MINECRAFT_TIMEOUT_SECONDS,
) -> Observation:
    if not is_valid_target(host):
        return Observation(status=DOWN, response_time=0, message="Invalid host format")

    started = time.perf_counter()
    try:
        status = await asyncio.wait_for(_ping(host, port), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Server timeout")
    except ConnectionRefusedError:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message="Server offline")
    except (OSError, ValueError) as exc:
        return Observation(status=DOWN, response_time=elapsed_ms(started), message=str(exc) or type(exc).__name__)

    return status_to_observation(status, response_time=elapsed_ms(started))
