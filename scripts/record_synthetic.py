#!/usr/bin/env python3
"""
Write a synthetic fingertip recording for replay

Usage:
    python scripts/record_synthetic.py recordings/synthetic_72bpm.csv --bpm 72 --seconds 30
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ppg_core.sources.replay_source import write_recording
from ppg_core.sources.synthetic_source import SyntheticFingerSource


def main():
    parser = argparse.ArgumentParser(description="Generate a replayable synthetic PPG recording")
    parser.add_argument('output', help="CSV file to write")
    parser.add_argument('--bpm', type=float, default=72.0)
    parser.add_argument('--seconds', type=float, default=30.0)
    parser.add_argument('--sample-rate', type=float, default=30.0)
    parser.add_argument('--noise', type=float, default=0.05)
    parser.add_argument('--seed', type=int, default=7)
    args = parser.parse_args()

    source = SyntheticFingerSource({
        'bpm': args.bpm,
        'duration_s': args.seconds,
        'sample_rate': args.sample_rate,
        'noise_std': args.noise,
        'seed': args.seed,
        'start_time_ms': 0.0,
        'width': 8,
        'height': 8,
    })

    samples = []

    def collect(_name, frame):
        red, green, blue = frame.pixels[0, 0, :3]
        samples.append((frame.timestamp, float(red), float(green), float(blue)))

    source.set_frame_callback(collect)
    source.run_blocking()

    count = write_recording(args.output, samples)
    print(f"Wrote {count} samples to {args.output}")


if __name__ == "__main__":
    main()
