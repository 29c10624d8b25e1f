"""
Analysis and visualization of radio link metrics.
Generates plots for frame traffic, decode/send failures, remote player
counts and tick processing time.
"""

import json
import os


def load_metrics(filepath: str) -> dict:
    """Load a metrics JSON file."""
    with open(filepath) as f:
        return json.load(f)


def _bucket_counts(records: list, width: float, key: str = None):
    """Sum records (or a field of them) into fixed-width time buckets."""
    import numpy as np

    if not records:
        return np.array([]), np.array([])
    times = np.array([r['t'] for r in records])
    weights = np.array([r[key] for r in records]) if key else None
    edges = np.arange(0.0, times.max() + width, width)
    if len(edges) < 2:
        edges = np.array([0.0, width])
    counts, _ = np.histogram(times, bins=edges, weights=weights)
    return edges[:-1], counts


def plot_link_traffic(data: dict, output_dir: str = 'analysis',
                      bucket: float = 60.0):
    """Frames and bytes on the air per time bucket."""
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        print("[ANALYSIS] matplotlib/numpy not available. Skipping plots.")
        return

    os.makedirs(output_dir, exist_ok=True)

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    fig.suptitle('Radio Link Analysis', fontsize=14, fontweight='bold')

    rx = data.get('frames_rx', [])
    tx = data.get('frames_tx', [])

    # ── 1. Frames per bucket ──
    ax = axes[0][0]
    if rx:
        t, c = _bucket_counts(rx, bucket)
        ax.step(t, c, where='post', color='#4CAF50', label='Received')
    if tx:
        t, c = _bucket_counts(tx, bucket)
        ax.step(t, c, where='post', color='#2196F3', label='Sent')
    if rx or tx:
        ax.legend(fontsize=9)
    ax.set_title(f'Frames per {bucket:.0f} s')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Frames')
    ax.grid(True, alpha=0.3)

    # ── 2. Bytes per bucket ──
    ax = axes[0][1]
    if rx:
        t, c = _bucket_counts(rx, bucket, key='bytes')
        ax.plot(t, c, color='#4CAF50', label='Received')
    if tx:
        t, c = _bucket_counts(tx, bucket, key='bytes')
        ax.plot(t, c, color='#2196F3', label='Sent')
    if rx or tx:
        ax.legend(fontsize=9)
    ax.set_title('Payload Bytes')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel(f'Bytes / {bucket:.0f} s')
    ax.grid(True, alpha=0.3)

    # ── 3. Failures ──
    ax = axes[1][0]
    decode_errors = data.get('decode_errors', [])
    send_errors = data.get('send_errors', [])
    if decode_errors:
        t, c = _bucket_counts(decode_errors, bucket)
        ax.step(t, c, where='post', color='orange', label='Decode')
    if send_errors:
        t, c = _bucket_counts(send_errors, bucket)
        ax.step(t, c, where='post', color='red', label='Send')
    if decode_errors or send_errors:
        ax.legend(fontsize=9)
    ax.set_title('Link Errors')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Errors')
    ax.grid(True, alpha=0.3)

    # ── 4. Remote players ──
    ax = axes[1][1]
    players = data.get('participants', [])
    if players:
        ptimes = [p['t'] for p in players]
        pcounts = [p['count'] for p in players]
        ax.step(ptimes, pcounts, where='post', color='purple')
        ax.fill_between(ptimes, 0, pcounts, step='post', alpha=0.2,
                        color='purple')
    ax.set_title('Remote Players Tracked')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Players')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'link_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def plot_tick_times(data: dict, output_dir: str = 'analysis'):
    """Plot client tick processing times."""
    try:
        import matplotlib.pyplot as plt
        import numpy as np
    except ImportError:
        return

    os.makedirs(output_dir, exist_ok=True)
    ticks = data.get('tick_times', [])
    if not ticks:
        return

    fig, ax = plt.subplots(figsize=(10, 4))
    tick_nums = [t['tick'] for t in ticks]
    durations = [t['duration_ms'] for t in ticks]
    ax.plot(tick_nums, durations, linewidth=0.5, color='#FF5722')
    mean_d = np.mean(durations)
    ax.axhline(y=mean_d, color='blue', linestyle='--',
               label=f'Mean: {mean_d:.3f} ms')
    ax.set_title('Client Tick Processing Time')
    ax.set_xlabel('Tick')
    ax.set_ylabel('Duration (ms)')
    ax.legend()
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'tick_time_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def analyze_all(filepath: str, output_dir: str = 'analysis'):
    """Run all analysis on a metrics file."""
    import numpy as np

    print(f"[ANALYSIS] Loading {filepath}...")
    data = load_metrics(filepath)

    plot_link_traffic(data, output_dir)
    plot_tick_times(data, output_dir)

    # Print summary
    print("\n=== Metrics Summary ===")
    rx = data.get('frames_rx', [])
    tx = data.get('frames_tx', [])
    print(f"  Frames: rx={len(rx)}, tx={len(tx)}")
    if rx:
        sizes = np.array([f['bytes'] for f in rx])
        print(f"  Rx size: mean={np.mean(sizes):.1f} B, max={np.max(sizes)} B")

    decode_errors = len(data.get('decode_errors', []))
    if rx:
        print(f"  Decode errors: {decode_errors} "
              f"({decode_errors / len(rx) * 100:.1f}% of received)")
    send_errors = len(data.get('send_errors', []))
    if send_errors:
        print(f"  Send errors: {send_errors}")

    players = [p['count'] for p in data.get('participants', [])]
    if players:
        print(f"  Players: max={np.max(players)}")

    ticks = [t['duration_ms'] for t in data.get('tick_times', [])]
    if ticks:
        print(f"  Tick Time:  mean={np.mean(ticks):.3f} ms, "
              f"max={np.max(ticks):.3f} ms")


if __name__ == '__main__':
    import argparse
    parser = argparse.ArgumentParser(description='Analyze radio link metrics')
    parser.add_argument('file', help='Metrics JSON file to analyze')
    parser.add_argument('--output', default='analysis', help='Output directory')
    args = parser.parse_args()
    analyze_all(args.file, args.output)
