"""
Envelopes passed between the game loop and the TNC threads.
"""

import json

from common.packet import PositionPacket, Direction


class MessageKind:
    """What an envelope's content holds."""
    CHAT = 'chat'
    POSITION = 'position'


class GameMessage:
    """
    A queued message. Inbound position content is a JSON object,
    inbound chat content is "CALLSIGN: text". Outbound content is the
    encoded wire line.
    """

    __slots__ = ('content', 'kind')

    def __init__(self, content: str, kind: str):
        self.content = content
        self.kind = kind

    def __repr__(self):
        return f"GameMessage(kind={self.kind}, content={self.content!r})"


def position_to_json(packet: PositionPacket) -> str:
    return json.dumps(packet.to_dict())


def position_from_json(content: str) -> PositionPacket:
    """Rebuild a PositionPacket from queued JSON. Raises ValueError on junk."""
    try:
        data = json.loads(content)
        callsign = data['callsign']
        x = data['x']
        y = data['y']
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"Malformed position payload: {e}") from None

    if not isinstance(callsign, str) or not callsign:
        raise ValueError("Malformed position payload: bad callsign")
    if not all(isinstance(v, (int, float)) for v in (x, y)):
        raise ValueError("Malformed position payload: bad coordinates")

    facing = data.get('direction', Direction.SOUTH)
    if facing not in Direction.ALL:
        facing = Direction.SOUTH
    return PositionPacket(callsign, x, y, facing)
