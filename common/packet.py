"""
Compact text protocol for game traffic over amateur radio.

Every packet is one ASCII line, prefixed with the APRS "user-defined"
data type indicator '{' so TNC software passes it through untouched:

    Position: {P|CALLSIGN|X|Y|DIR      e.g. {P|N0CALL-1|128|256|S
    Chat:     {C|CALLSIGN|MESSAGE      e.g. {C|N0CALL-1|Hello world

The format is plain text, not encryption: anyone listening on the
frequency can read it.
"""

import math

from common.config import SENTINEL, SEPARATOR


class Direction:
    """Cardinal facings carried in position packets."""
    NORTH = 'north'
    SOUTH = 'south'
    EAST = 'east'
    WEST = 'west'

    ALL = (NORTH, SOUTH, EAST, WEST)

    _CODES = {
        NORTH: 'N',
        SOUTH: 'S',
        EAST: 'E',
        WEST: 'W',
    }
    _FROM_CODE = {code: name for name, code in _CODES.items()}

    @classmethod
    def to_code(cls, direction: str) -> str:
        return cls._CODES.get(direction, 'S')

    @classmethod
    def from_code(cls, code: str) -> str:
        return cls._FROM_CODE.get(code, cls.SOUTH)


class PacketTag:
    """Single-character packet type tags."""
    POSITION = 'P'
    CHAT = 'C'


class DecodeError(ValueError):
    """Raised when a line cannot be decoded into a packet."""


class EmptyPacket(DecodeError):
    pass


class UnknownTag(DecodeError):
    pass


class BadField(DecodeError):
    pass


class PositionPacket:
    """A participant's reported location and facing."""

    __slots__ = ('callsign', 'x', 'y', 'facing')

    def __init__(self, callsign: str, x: int, y: int,
                 facing: str = Direction.SOUTH):
        self.callsign = callsign
        self.x = x
        self.y = y
        self.facing = facing

    def __eq__(self, other):
        if not isinstance(other, PositionPacket):
            return NotImplemented
        return (self.callsign, self.x, self.y, self.facing) == \
               (other.callsign, other.x, other.y, other.facing)

    def to_dict(self) -> dict:
        return {
            'callsign': self.callsign,
            'x': self.x, 'y': self.y,
            'direction': self.facing,
        }

    def __repr__(self):
        return (f"PositionPacket({self.callsign!r}, x={self.x}, y={self.y}, "
                f"facing={self.facing})")


class ChatPacket:
    """A line of chat text from one participant."""

    __slots__ = ('callsign', 'text')

    def __init__(self, callsign: str, text: str):
        self.callsign = callsign
        self.text = text

    def __eq__(self, other):
        if not isinstance(other, ChatPacket):
            return NotImplemented
        return (self.callsign, self.text) == (other.callsign, other.text)

    def display(self) -> str:
        """Render as it appears in the chat log."""
        return f"{self.callsign}: {self.text}"

    def __repr__(self):
        return f"ChatPacket({self.callsign!r}, {self.text!r})"


def round_coordinate(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def encode_position(callsign: str, x: float, y: float, facing: str) -> str:
    """Encode a position report. Sub-unit precision is dropped."""
    return SEPARATOR.join((
        SENTINEL + PacketTag.POSITION,
        callsign,
        str(round_coordinate(x)),
        str(round_coordinate(y)),
        Direction.to_code(facing),
    ))


def encode_chat(callsign: str, text: str) -> str:
    """Encode a chat line. The text is not escaped."""
    return SEPARATOR.join((SENTINEL + PacketTag.CHAT, callsign, text))


def encode(packet) -> str:
    """Encode a PositionPacket or ChatPacket to its wire text."""
    if isinstance(packet, PositionPacket):
        return encode_position(packet.callsign, packet.x, packet.y,
                               packet.facing)
    if isinstance(packet, ChatPacket):
        return encode_chat(packet.callsign, packet.text)
    raise TypeError(f"Cannot encode {type(packet).__name__}")


def _parse_coordinate(field: str, name: str) -> int:
    try:
        value = float(field)
    except ValueError:
        raise BadField(f"Invalid {name} coordinate: {field!r}") from None
    if not math.isfinite(value):
        raise BadField(f"Invalid {name} coordinate: {field!r}")
    return round_coordinate(value)


def decode(data):
    """
    Decode wire text into a PositionPacket or ChatPacket.

    Accepts str or bytes, with or without the leading '{'. Never raises
    anything but a DecodeError subclass.
    """
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode('utf-8', errors='replace')

    if data.startswith(SENTINEL):
        data = data[len(SENTINEL):]
    if not data:
        raise EmptyPacket("Empty packet")

    parts = data.split(SEPARATOR)
    tag = parts[0]

    if tag == PacketTag.POSITION:
        if len(parts) < 5:
            raise BadField("Invalid position packet")
        callsign = parts[1]
        if not callsign:
            raise BadField("Position packet without callsign")
        x = _parse_coordinate(parts[2], 'X')
        y = _parse_coordinate(parts[3], 'Y')
        return PositionPacket(callsign, x, y, Direction.from_code(parts[4]))

    if tag == PacketTag.CHAT:
        if len(parts) < 3:
            raise BadField("Invalid chat packet")
        # Rejoin the tail in case the message itself contains '|'
        return ChatPacket(parts[1], SEPARATOR.join(parts[2:]))

    raise UnknownTag(f"Unknown packet type: {tag!r}")
