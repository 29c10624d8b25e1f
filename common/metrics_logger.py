"""
Metrics logging for link analysis.
Logs frame traffic, decode/send failures, participant counts and tick times.
"""

import json
import os
import threading
import time


class MetricsLogger:
    """Collects and persists radio link / game loop metrics."""

    def __init__(self, log_dir: str = 'analysis/logs'):
        self.log_dir = log_dir
        self.start_time = time.time()
        self.data = {
            'frames_rx': [],
            'frames_tx': [],
            'decode_errors': [],
            'send_errors': [],
            'participants': [],
            'tick_times': [],
        }
        # Written from the TNC threads as well as the game loop
        self._lock = threading.Lock()

    def _elapsed(self) -> float:
        return round(time.time() - self.start_time, 4)

    def _append(self, key: str, record: dict):
        with self._lock:
            self.data[key].append(record)

    def log_frame_received(self, nbytes: int):
        self._append('frames_rx', {'t': self._elapsed(), 'bytes': nbytes})

    def log_frame_sent(self, nbytes: int):
        self._append('frames_tx', {'t': self._elapsed(), 'bytes': nbytes})

    def log_decode_error(self, reason: str):
        self._append('decode_errors', {'t': self._elapsed(), 'reason': reason})

    def log_send_error(self, reason: str):
        self._append('send_errors', {'t': self._elapsed(), 'reason': reason})

    def log_participants(self, count: int):
        self._append('participants', {'t': self._elapsed(), 'count': count})

    def log_tick_time(self, tick: int, duration_ms: float):
        self._append('tick_times', {
            'tick': tick, 'duration_ms': round(duration_ms, 4)
        })

    def save(self, filename: str = 'metrics.json'):
        os.makedirs(self.log_dir, exist_ok=True)
        path = os.path.join(self.log_dir, filename)
        with self._lock:
            snapshot = {k: list(v) for k, v in self.data.items()}
        with open(path, 'w') as f:
            json.dump(snapshot, f, indent=2)
        print(f"[METRICS] Saved to {path}")
        return path

    def get_summary(self) -> dict:
        """Compute summary statistics."""
        with self._lock:
            data = {k: list(v) for k, v in self.data.items()}

        summary = {}
        summary['frames_rx'] = len(data['frames_rx'])
        summary['frames_tx'] = len(data['frames_tx'])
        summary['bytes_rx'] = sum(f['bytes'] for f in data['frames_rx'])
        summary['bytes_tx'] = sum(f['bytes'] for f in data['frames_tx'])
        summary['decode_errors'] = len(data['decode_errors'])
        summary['send_errors'] = len(data['send_errors'])

        received = summary['frames_rx']
        if received:
            summary['decode_error_rate'] = summary['decode_errors'] / received

        counts = [p['count'] for p in data['participants']]
        if counts:
            summary['participants_max'] = max(counts)

        ticks = [t['duration_ms'] for t in data['tick_times']]
        if ticks:
            summary['tick_time_mean'] = sum(ticks) / len(ticks)
            summary['tick_time_max'] = max(ticks)

        return summary
