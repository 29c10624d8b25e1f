"""
Headless radio client: connects to a KISS TNC, runs the networking
tick at a fixed rate, broadcasts the local position and tracks the
remote players it hears.
"""

import time

from common.config import (
    DEFAULT_CALLSIGN, DEFAULT_TNC_HOST, DEFAULT_TNC_PORT, DEFAULT_TICK_RATE,
    POSITION_UPDATE_INTERVAL, POSITION_UPDATE_JITTER, read_game_config
)
from common.metrics_logger import MetricsLogger
from common.net import KissTnc, NetworkSimulator
from client.session import GameSession, PositionBroadcaster


class RadioClient:
    """
    Drives a GameSession at a fixed tick rate. Rendering and input live
    elsewhere; this loop only keeps the link state current.
    """

    def __init__(self, callsign: str = DEFAULT_CALLSIGN,
                 tnc_host: str = DEFAULT_TNC_HOST,
                 tnc_port: int = DEFAULT_TNC_PORT,
                 tick_rate: int = DEFAULT_TICK_RATE,
                 interval: int = POSITION_UPDATE_INTERVAL,
                 jitter: int = POSITION_UPDATE_JITTER,
                 loss_sim: float = 0.0, opener=None, verbose: bool = True):
        self.callsign = callsign
        self.tick_rate = tick_rate
        self.dt = 1.0 / tick_rate
        self.running = False
        self.verbose = verbose

        self.metrics = MetricsLogger()

        base_opener = opener or KissTnc.open
        opener = base_opener
        if loss_sim > 0:
            def lossy_opener(address):
                return NetworkSimulator(base_opener(address), loss_rate=loss_sim)
            opener = lossy_opener

        self.session = GameSession.connect(
            callsign, tnc_host, tnc_port, opener=opener,
            metrics=self.metrics, verbose=verbose,
            broadcaster=PositionBroadcaster(interval, jitter)
        )

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    def get_metrics_display(self) -> dict:
        """Link status for a HUD or the periodic console line."""
        metrics = {}
        bridge = self.session.bridge
        metrics['Link'] = 'up' if self.session.online else 'down'
        metrics['Players'] = str(self.session.registry.count)
        metrics['Tick'] = str(self.session.current_tick)
        if bridge is not None:
            metrics['Rx'] = f"{bridge.frames_received} frames"
            metrics['Tx'] = f"{bridge.frames_sent} frames"
            metrics['Errors'] = f"{bridge.decode_failures} decode / " \
                                f"{bridge.send_failures} send"
        return metrics

    def run(self, chat: str = None, duration: float = None):
        """Main client loop."""
        self.running = True
        if chat:
            self.session.send_chat(chat)

        start_time = time.perf_counter()
        next_tick_time = start_time
        last_stats_time = start_time
        stats_interval = 5.0

        try:
            while self.running:
                now = time.perf_counter()
                if duration is not None and now - start_time >= duration:
                    break

                while now >= next_tick_time:
                    self.session.tick()
                    next_tick_time += self.dt

                if now - last_stats_time >= stats_interval:
                    stats = ' | '.join(f"{k}: {v}" for k, v in
                                       self.get_metrics_display().items())
                    self._log(f"[CLIENT] {stats}")
                    last_stats_time = now

                sleep_time = next_tick_time - time.perf_counter()
                if sleep_time > 0:
                    time.sleep(sleep_time)

        except KeyboardInterrupt:
            self._log("\n[CLIENT] Interrupted")
        finally:
            self.running = False
            self.session.shutdown()

            self.metrics.save(f'client_{self.callsign}_metrics.json')
            summary = self.metrics.get_summary()
            if summary:
                self._log(f"[CLIENT] Metrics summary: {summary}")


def main():
    """Entry point for running the client standalone."""
    import argparse
    parser = argparse.ArgumentParser(description='Radio RPG link client')
    parser.add_argument('--config', default=None,
                        help='INI file with a [Game] section')
    parser.add_argument('--callsign', default=None, help='Station callsign')
    parser.add_argument('--host', default=None, help='TNC host')
    parser.add_argument('--port', type=int, default=None, help='TNC KISS port')
    parser.add_argument('--interval', type=int, default=None,
                        help='Seconds between position reports')
    parser.add_argument('--jitter', type=int, default=POSITION_UPDATE_JITTER,
                        help='Random +/- seconds added to each interval')
    parser.add_argument('--tick-rate', type=int, default=DEFAULT_TICK_RATE,
                        help='Client tick rate (Hz)')
    parser.add_argument('--loss', type=float, default=0.0,
                        help='Simulated transmit loss rate (0.0-1.0)')
    parser.add_argument('--chat', default=None,
                        help='Send one chat line after connecting')
    parser.add_argument('--duration', type=float, default=None,
                        help='Stop after this many seconds')
    args = parser.parse_args()

    # Command line beats config file beats built-in defaults
    settings = {
        'callsign': DEFAULT_CALLSIGN,
        'tnc_host': DEFAULT_TNC_HOST,
        'tnc_port': DEFAULT_TNC_PORT,
        'position_update_time': POSITION_UPDATE_INTERVAL,
    }
    if args.config:
        settings.update(read_game_config(args.config))
    overrides = {
        'callsign': args.callsign,
        'tnc_host': args.host,
        'tnc_port': args.port,
        'position_update_time': args.interval,
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})

    client = RadioClient(
        callsign=settings['callsign'],
        tnc_host=settings['tnc_host'], tnc_port=settings['tnc_port'],
        tick_rate=args.tick_rate,
        interval=settings['position_update_time'], jitter=args.jitter,
        loss_sim=args.loss
    )
    client.run(chat=args.chat, duration=args.duration)


if __name__ == '__main__':
    main()
