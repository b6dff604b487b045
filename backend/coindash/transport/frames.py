"""STOMP 1.2 frame encoding and decoding.

One frame per websocket text message. A message holding only end-of-line
characters is a heartbeat.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .errors import FrameError

NULL = "\x00"
HEARTBEAT = "\n"

CLIENT_COMMANDS = frozenset(
    {"CONNECT", "STOMP", "SEND", "SUBSCRIBE", "UNSUBSCRIBE", "ACK", "NACK", "BEGIN", "COMMIT", "ABORT", "DISCONNECT"}
)
SERVER_COMMANDS = frozenset({"CONNECTED", "MESSAGE", "RECEIPT", "ERROR"})

# CONNECT / CONNECTED headers are never escaped (STOMP 1.2, "Value Encoding").
_RAW_HEADER_COMMANDS = frozenset({"CONNECT", "CONNECTED"})

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}
_ESCAPE_RE = re.compile(r"[\\\r\n:]")
_UNESCAPE_RE = re.compile(r"\\(.?)")
_HEAD_END_RE = re.compile(r"\r?\n\r?\n")


@dataclass(frozen=True, slots=True)
class Frame:
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def destination(self) -> str | None:
        return self.headers.get("destination")

    @property
    def subscription(self) -> str | None:
        return self.headers.get("subscription")


def _escape(value: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], value)


def _unescape(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        try:
            return _UNESCAPES[match.group(1)]
        except KeyError:
            raise FrameError(f"invalid header escape sequence: {match.group(0)!r}") from None

    return _UNESCAPE_RE.sub(replace, value)


def encode_frame(frame: Frame) -> str:
    """Serialize a frame to the text sent over the websocket."""
    raw = frame.command in _RAW_HEADER_COMMANDS
    lines = [frame.command]
    for key, value in frame.headers.items():
        value = str(value)
        lines.append(f"{key}:{value}" if raw else f"{_escape(key)}:{_escape(value)}")
    return "\n".join(lines) + "\n\n" + frame.body + NULL


def decode_frame(data: str | bytes) -> Frame | None:
    """Parse one received message. Returns None for a heartbeat."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameError(f"frame is not valid UTF-8: {e}") from e

    text = data.lstrip("\r\n")
    if not text or text == NULL:
        return None

    match = _HEAD_END_RE.search(text)
    if match is None:
        raise FrameError("frame has no header terminator")

    head_lines = [line.rstrip("\r") for line in text[: match.start()].split("\n")]
    command = head_lines[0]
    if command not in SERVER_COMMANDS and command not in CLIENT_COMMANDS:
        raise FrameError(f"unknown command: {command!r}")

    raw = command in _RAW_HEADER_COMMANDS
    headers: dict[str, str] = {}
    for line in head_lines[1:]:
        key, sep, value = line.partition(":")
        if not sep:
            raise FrameError(f"malformed header line: {line!r}")
        if not raw:
            key, value = _unescape(key), _unescape(value)
        headers.setdefault(key, value)  # Repeated headers: first one wins

    rest = text[match.end() :]
    length = headers.get("content-length")
    if length is not None:
        try:
            size = int(length)
        except ValueError:
            raise FrameError(f"invalid content-length: {length!r}") from None
        encoded = rest.encode("utf-8")
        if len(encoded) < size:
            raise FrameError(f"body shorter than content-length {size}")
        body = encoded[:size].decode("utf-8", errors="replace")
    else:
        body, terminator, _ = rest.partition(NULL)
        if not terminator:
            raise FrameError("frame is not NULL-terminated")

    return Frame(command=command, headers=headers, body=body)


def parse_heartbeat(value: str | None) -> tuple[int, int]:
    """Parse a `heart-beat` header ("cx,cy") into two millisecond intervals."""
    if not value:
        return 0, 0
    try:
        send_ms, receive_ms = (int(part) for part in value.split(","))
    except ValueError:
        raise FrameError(f"invalid heart-beat header: {value!r}") from None
    return max(0, send_ms), max(0, receive_ms)


def negotiate_heartbeat(client: tuple[int, int], server: tuple[int, int]) -> tuple[int, int]:
    """Return (outgoing_ms, incoming_ms) agreed between client and server.

    Zero means that direction is disabled.
    """
    client_send, client_receive = client
    server_send, server_receive = server
    outgoing = max(client_send, server_receive) if client_send and server_receive else 0
    incoming = max(client_receive, server_send) if client_receive and server_send else 0
    return outgoing, incoming
