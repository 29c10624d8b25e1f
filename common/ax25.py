"""
Minimal AX.25 framing for connectionless game traffic.

Only Unnumbered Information (UI) frames are built. Layout as written to
the TNC (no flags or FCS, the TNC adds those):

    Destination address (7 bytes)
    Source address      (7 bytes)
    Digipeaters         (7 bytes each, optional)
    Control             (1 byte)  - 0x03 for UI
    PID                 (1 byte)  - 0xF0, no layer 3
    Info                (N bytes)

Each address is six callsign characters shifted left one bit and
space-padded, followed by an SSID byte: 0b CRR SSSS E
(C = command/response bit, RR = reserved 1s, E = last-address bit).
"""

import re

CONTROL_UI = 0x03
PID_NO_LAYER3 = 0xF0
ADDRESS_SIZE = 7

_CALLSIGN_RE = re.compile(r'^([A-Za-z0-9]{1,6})(?:-(\d{1,2}))?$')


class SetupError(Exception):
    """Fatal problem establishing the radio link."""


class Address:
    """An AX.25 station address: callsign plus SSID (0-15)."""

    __slots__ = ('callsign', 'ssid')

    def __init__(self, callsign: str, ssid: int = 0):
        self.callsign = callsign.upper()
        self.ssid = ssid

    @staticmethod
    def parse(text: str) -> 'Address':
        """Parse "CALL" or "CALL-SSID". Raises SetupError if invalid."""
        match = _CALLSIGN_RE.match(text.strip()) if text else None
        if match is None:
            raise SetupError(f"Invalid callsign: {text!r}")
        ssid = int(match.group(2)) if match.group(2) is not None else 0
        if ssid > 15:
            raise SetupError(f"Invalid SSID in callsign: {text!r}")
        return Address(match.group(1), ssid)

    def encode(self, command: bool = False, last: bool = False) -> bytes:
        padded = self.callsign.ljust(6)
        buf = bytes((ord(c) << 1) & 0xFE for c in padded)
        ssid_byte = 0x60 | ((self.ssid & 0x0F) << 1)
        if command:
            ssid_byte |= 0x80
        if last:
            ssid_byte |= 0x01
        return buf + bytes([ssid_byte])

    @staticmethod
    def decode(data: bytes) -> 'Address':
        if len(data) < ADDRESS_SIZE:
            raise ValueError("Address field truncated")
        callsign = ''.join(chr(b >> 1) for b in data[:6]).rstrip()
        ssid = (data[6] >> 1) & 0x0F
        return Address(callsign, ssid)

    def __eq__(self, other):
        if not isinstance(other, Address):
            return NotImplemented
        return (self.callsign, self.ssid) == (other.callsign, other.ssid)

    def __hash__(self):
        return hash((self.callsign, self.ssid))

    def __str__(self):
        if self.ssid:
            return f"{self.callsign}-{self.ssid}"
        return self.callsign

    def __repr__(self):
        return f"Address({str(self)!r})"


def is_valid_callsign(text: str) -> bool:
    try:
        Address.parse(text)
    except SetupError:
        return False
    return True


class Frame:
    """An AX.25 frame carrying an optional info payload."""

    def __init__(self, source: Address, destination: Address,
                 info: bytes = None, route: list = None,
                 control: int = CONTROL_UI, pid: int = PID_NO_LAYER3):
        self.source = source
        self.destination = destination
        self.route = route or []
        self.control = control
        self.pid = pid
        self.info = info

    @property
    def is_ui(self) -> bool:
        # Ignore the poll/final bit
        return (self.control & 0xEF) == CONTROL_UI

    def info_text(self):
        """Info field as text (undecodable bytes replaced), or None."""
        if self.info is None:
            return None
        return self.info.decode('utf-8', errors='replace')

    def encode(self) -> bytes:
        """Serialize as a command UI frame."""
        addresses = [self.destination, self.source] + list(self.route)
        buf = b''
        for i, addr in enumerate(addresses):
            buf += addr.encode(command=(i == 0),
                               last=(i == len(addresses) - 1))
        buf += bytes([self.control])
        if self.is_ui:
            buf += bytes([self.pid]) + (self.info or b'')
        return buf

    @staticmethod
    def decode(data: bytes) -> 'Frame':
        """Parse raw frame bytes. Raises ValueError if malformed."""
        addresses = []
        offset = 0
        while True:
            if offset + ADDRESS_SIZE > len(data):
                raise ValueError("Frame truncated in address field")
            chunk = data[offset:offset + ADDRESS_SIZE]
            addresses.append(Address.decode(chunk))
            offset += ADDRESS_SIZE
            if chunk[6] & 0x01:
                break
        if len(addresses) < 2:
            raise ValueError("Frame needs destination and source addresses")
        if offset >= len(data):
            raise ValueError("Frame missing control field")

        control = data[offset]
        offset += 1
        frame = Frame(addresses[1], addresses[0], route=addresses[2:],
                      control=control)
        if frame.is_ui:
            if offset >= len(data):
                raise ValueError("UI frame missing PID")
            frame.pid = data[offset]
            frame.info = bytes(data[offset + 1:])
        return frame

    def __repr__(self):
        return (f"Frame({self.source} -> {self.destination}, "
                f"info_len={len(self.info) if self.info is not None else 0})")
