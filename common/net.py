"""
TNC connectivity: address parsing, KISS framing over TCP, link simulation.
"""

import random
import socket

from common.ax25 import Frame, SetupError
from common.config import DEFAULT_BUFFER_SIZE, TNC_CONNECT_TIMEOUT

# KISS special bytes
FEND = 0xC0
FESC = 0xDB
TFEND = 0xDC
TFESC = 0xDD

KISS_CMD_DATA = 0x00

# An AX.25 frame is a few hundred bytes; anything this long without a
# FEND is line noise
MAX_KISS_BUFFER = 4 * DEFAULT_BUFFER_SIZE


def kiss_escape(data: bytes) -> bytes:
    """Byte-stuff FEND/FESC inside a frame body."""
    out = bytearray()
    for b in data:
        if b == FEND:
            out += bytes([FESC, TFEND])
        elif b == FESC:
            out += bytes([FESC, TFESC])
        else:
            out.append(b)
    return bytes(out)


def kiss_unescape(data: bytes) -> bytes:
    out = bytearray()
    escaped = False
    for b in data:
        if escaped:
            if b == TFEND:
                out.append(FEND)
            elif b == TFESC:
                out.append(FESC)
            else:
                # Protocol violation; keep the byte rather than drop data
                out.append(b)
            escaped = False
        elif b == FESC:
            escaped = True
        else:
            out.append(b)
    return bytes(out)


def kiss_frame(payload: bytes, port: int = 0) -> bytes:
    """Wrap raw AX.25 bytes in a KISS data frame."""
    command = ((port & 0x0F) << 4) | KISS_CMD_DATA
    return bytes([FEND, command]) + kiss_escape(payload) + bytes([FEND])


class KissDecoder:
    """
    Incremental KISS deframer. Feed it whatever the socket returns;
    it hands back complete AX.25 payloads from data frames.
    """

    def __init__(self, max_buffer: int = MAX_KISS_BUFFER):
        self.buffer = bytearray()
        self.max_buffer = max_buffer
        self.overflows = 0

    def feed(self, chunk: bytes) -> list:
        self.buffer += chunk
        frames = []
        while True:
            end = self.buffer.find(FEND)
            if end < 0:
                break
            body = bytes(self.buffer[:end])
            del self.buffer[:end + 1]
            if not body:
                continue        # Back-to-back FENDs
            if body[0] & 0x0F != KISS_CMD_DATA:
                continue        # TNC parameter commands are not for us
            frames.append(kiss_unescape(body[1:]))

        if len(self.buffer) > self.max_buffer:
            # Resync on the next FEND
            self.buffer.clear()
            self.overflows += 1
        return frames


class TncAddress:
    """A TNC endpoint of the form tnc:tcpkiss:<host>:<port>."""

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port

    @staticmethod
    def parse(text: str) -> 'TncAddress':
        parts = text.split(':')
        if len(parts) != 4 or parts[0] != 'tnc':
            raise SetupError(f"Invalid TNC address: {text!r}")
        if parts[1] != 'tcpkiss':
            raise SetupError(f"Unsupported TNC type: {parts[1]!r}")
        host = parts[2]
        if not host:
            raise SetupError(f"Missing TNC host in {text!r}")
        try:
            port = int(parts[3])
        except ValueError:
            raise SetupError(f"Invalid TNC port in {text!r}") from None
        if not 0 < port < 65536:
            raise SetupError(f"TNC port out of range in {text!r}")
        return TncAddress(host, port)

    @staticmethod
    def build(host: str, port) -> str:
        return f"tnc:tcpkiss:{host}:{port}"

    def __str__(self):
        return self.build(self.host, self.port)


class KissTnc:
    """A KISS TNC reached over TCP (Direwolf, soundmodem, ...)."""

    def __init__(self, sock: socket.socket, address: TncAddress):
        self.sock = sock
        self.address = address
        self.closed = False

    @staticmethod
    def open(address: TncAddress,
             timeout: float = TNC_CONNECT_TIMEOUT) -> 'KissTnc':
        """Connect to the TNC. Raises SetupError on failure."""
        try:
            sock = socket.create_connection((address.host, address.port),
                                            timeout=timeout)
        except OSError as e:
            raise SetupError(f"Failed to connect to TNC {address}: {e}") from e
        sock.settimeout(None)   # Receive loop blocks
        return KissTnc(sock, address)

    def send_frame(self, frame: Frame):
        """Write one frame. Raises OSError if the socket write fails."""
        self.sock.sendall(kiss_frame(frame.encode()))

    def incoming(self):
        """Yield decoded frames until the connection closes."""
        decoder = KissDecoder()
        while not self.closed:
            try:
                chunk = self.sock.recv(DEFAULT_BUFFER_SIZE)
            except OSError:
                return
            if not chunk:
                return
            for raw in decoder.feed(chunk):
                try:
                    yield Frame.decode(raw)
                except ValueError as e:
                    print(f"[TNC] Dropping malformed frame: {e}", flush=True)

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            # Wake up a receive blocked in another thread
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


class NetworkSimulator:
    """
    Wraps a TNC with simulated radio conditions on the transmit side:
    dropped and duplicated frames.
    """

    def __init__(self, tnc, loss_rate: float = 0.0,
                 duplicate_rate: float = 0.0, rng: random.Random = None):
        self.tnc = tnc
        self.loss_rate = loss_rate
        self.duplicate_rate = duplicate_rate
        self.rng = rng or random.Random()
        self.dropped = 0
        self.duplicated = 0

    def send_frame(self, frame: Frame):
        if self.rng.random() < self.loss_rate:
            self.dropped += 1
            return
        self.tnc.send_frame(frame)
        if self.rng.random() < self.duplicate_rate:
            self.duplicated += 1
            self.tnc.send_frame(frame)

    def incoming(self):
        return self.tnc.incoming()

    def close(self):
        self.tnc.close()
