"""
Bridge between the blocking TNC connection and the per-tick game loop.

Two daemon threads own all TNC I/O:
- receiver: reads frames, decodes them, queues GameMessages for the game
- sender: takes queued GameMessages and writes them out as UI frames

The game loop only touches the two queues, through drain_inbound() and
enqueue_outbound(), neither of which ever blocks.
"""

import queue
import threading

from common.ax25 import Address, Frame
from common.config import DESTINATION_CALLSIGN
from common.message import GameMessage, MessageKind, position_to_json
from common.net import KissTnc, TncAddress
from common.packet import DecodeError, PositionPacket, decode


class TncBridge:
    """
    Owns an open TNC and moves messages between it and the game loop.
    Use TncBridge.start() to build one; a failed start raises SetupError
    and leaves no bridge behind.
    """

    def __init__(self, tnc, source: Address, destination: Address,
                 verbose: bool = True, metrics=None):
        self.source = source
        self.destination = destination
        self.verbose = verbose
        self.metrics = metrics

        # The TNC handle never leaves this object
        self._tnc = tnc
        self._tnc_lock = threading.Lock()

        self.inbound = queue.Queue()     # TNC -> game
        self.outbound = queue.Queue()    # game -> TNC
        self._stop = threading.Event()
        self.link_lost = False      # Receive stream ended without stop()

        self._rx_thread = None
        self._tx_thread = None

        # Statistics
        self.frames_received = 0
        self.frames_sent = 0
        self.bytes_received = 0
        self.bytes_sent = 0
        self.decode_failures = 0
        self.send_failures = 0

    @classmethod
    def start(cls, tnc_address: str, callsign: str, opener=KissTnc.open,
              verbose: bool = True, metrics=None) -> 'TncBridge':
        """
        Validate configuration, open the TNC and spawn both loops.

        Raises SetupError for a bad address, a bad callsign or a TNC that
        cannot be opened. There is no retry.
        """
        address = TncAddress.parse(tnc_address)
        source = Address.parse(callsign)
        destination = Address.parse(DESTINATION_CALLSIGN)

        if verbose:
            print(f"[TNC] Connecting to TNC: {address}", flush=True)
        tnc = opener(address)
        if verbose:
            print("[TNC] Connected to TNC successfully!", flush=True)

        bridge = cls(tnc, source, destination, verbose=verbose,
                     metrics=metrics)
        bridge._spawn()
        return bridge

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def _spawn(self):
        self._rx_thread = threading.Thread(
            target=self._receive_loop, name='tnc-receiver', daemon=True)
        self._tx_thread = threading.Thread(
            target=self._send_loop, name='tnc-sender', daemon=True)
        self._rx_thread.start()
        self._tx_thread.start()

    @property
    def running(self) -> bool:
        return not self._stop.is_set() and not self.link_lost

    # -- receiver thread ---------------------------------------------------

    def _receive_loop(self):
        self._log("[TNC] Starting TNC receiver thread...")
        with self._tnc_lock:
            frames = self._tnc.incoming()

        try:
            for frame in frames:
                if self._stop.is_set():
                    break
                text = frame.info_text()
                if text is None:
                    continue

                self.frames_received += 1
                self.bytes_received += len(frame.info)
                if self.metrics:
                    self.metrics.log_frame_received(len(frame.info))
                self._log(f"[TNC] Received from TNC: {len(frame.info)} bytes - {text}")

                message = self._to_message(text)
                if message is not None:
                    self.inbound.put(message)
        except OSError as e:
            self._log(f"[!] TNC receive failed: {e}")

        if not self._stop.is_set():
            self.link_lost = True
            self._log("[!] TNC link lost - no more frames will be received")
        self._log("[!] TNC receiver thread ended")

    def _to_message(self, text: str):
        """Decode one info field into a GameMessage, or None if undecodable."""
        try:
            packet = decode(text)
        except DecodeError as e:
            self.decode_failures += 1
            if self.metrics:
                self.metrics.log_decode_error(str(e))
            self._log(f"[!] Failed to decode packet: {e}")
            return None

        if isinstance(packet, PositionPacket):
            return GameMessage(position_to_json(packet), MessageKind.POSITION)
        return GameMessage(packet.display(), MessageKind.CHAT)

    # -- sender thread -----------------------------------------------------

    def _send_loop(self):
        self._log("[TNC] Starting TNC sender thread...")
        while not self._stop.is_set():
            message = self.outbound.get()
            if message is None:
                break       # Woken by stop()

            info = message.content.encode('utf-8')
            frame = Frame(self.source, self.destination, info=info)
            self._log(f"[TNC] Sending to TNC: {len(info)} bytes - {message.content}")

            try:
                with self._tnc_lock:
                    self._tnc.send_frame(frame)
            except OSError as e:
                self.send_failures += 1
                if self.metrics:
                    self.metrics.log_send_error(str(e))
                self._log(f"[!] Failed to send frame to TNC: {e}")
                continue

            self.frames_sent += 1
            self.bytes_sent += len(info)
            if self.metrics:
                self.metrics.log_frame_sent(len(info))

        self._log("[!] TNC sender thread ended")

    # -- game loop side ----------------------------------------------------

    def drain_inbound(self) -> list:
        """Return every queued inbound message without waiting."""
        messages = []
        while True:
            try:
                messages.append(self.inbound.get_nowait())
            except queue.Empty:
                break
        return messages

    def enqueue_outbound(self, kind: str, text: str):
        """Hand a wire line to the sender thread. Never blocks."""
        if self._stop.is_set():
            return
        self.outbound.put(GameMessage(text, kind))

    def stop(self, timeout: float = 1.0):
        """Signal both loops to finish and release the TNC."""
        if self._stop.is_set():
            return
        self._stop.set()
        self.outbound.put(None)
        self._tnc.close()
        for thread in (self._rx_thread, self._tx_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout)
