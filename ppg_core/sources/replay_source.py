"""Replay of recorded ROI averages from CSV (timestamp_ms,red,green,blue)."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .base_source import BaseFrameSource, SourceFrame

FIELDNAMES = ('timestamp_ms', 'red', 'green', 'blue')


class ReplayFrameSource(BaseFrameSource):
    """
    Feed a recorded session back through the pipeline

    Rows with missing or non-numeric values are skipped with a warning.
    With ``loop`` enabled the recording restarts and timestamps keep
    increasing.
    """

    def __init__(self, config: Dict[str, Any]):
        config = dict(config)
        config.setdefault('realtime', False)
        super().__init__(config.get('name', 'replay'), config)

        self.path = Path(config['path'])
        self.loop = bool(config.get('loop', False))
        self._rows: List[Tuple[float, float, float, float]] = []
        self._position = 0
        self._offset_ms = 0.0

    def initialize(self) -> bool:
        if not self.path.exists():
            self.logger.error(f"Recording not found: {self.path}")
            return False

        try:
            self._rows = self._load(self.path)
        except (OSError, csv.Error) as e:
            self.logger.error(f"Failed to read {self.path}: {e}")
            return False

        if not self._rows:
            self.logger.error(f"Recording {self.path} has no usable rows")
            return False

        self._position = 0
        self._offset_ms = 0.0
        self.logger.info(f"Loaded {len(self._rows)} samples from {self.path}")
        return True

    def _load(self, path: Path) -> List[Tuple[float, float, float, float]]:
        rows = []
        with path.open('r', newline='', encoding='utf-8') as f:
            reader = csv.DictReader(f)
            missing = [name for name in FIELDNAMES if name not in (reader.fieldnames or [])]
            if missing:
                raise csv.Error(f"missing columns: {', '.join(missing)}")
            for line_no, row in enumerate(reader, start=2):
                try:
                    rows.append(tuple(float(row[name]) for name in FIELDNAMES))
                except (TypeError, ValueError):
                    self.logger.warning(f"Skipping malformed row {line_no} in {path.name}")
        return rows

    def cleanup(self):
        self._rows = []

    def read_frame(self) -> Optional[SourceFrame]:
        if self._position >= len(self._rows):
            if not self.loop or not self._rows:
                self.exhausted = True
                return None
            first_ts, last_ts = self._rows[0][0], self._rows[-1][0]
            self._offset_ms += (last_ts - first_ts) + 1000.0 / self.sample_rate
            self._position = 0

        timestamp, red, green, blue = self._rows[self._position]
        frame = SourceFrame(
            timestamp=timestamp + self._offset_ms,
            index=self.frames_read,
            rgb=(red, green, blue),
        )
        self._position += 1
        return frame


def write_recording(path, samples) -> int:
    """
    Write (timestamp_ms, red, green, blue) samples in the replay CSV format

    Returns:
        int: Number of rows written
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with target.open('w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(FIELDNAMES)
        for timestamp, red, green, blue in samples:
            writer.writerow([f"{timestamp:.3f}", f"{red:.4f}", f"{green:.4f}", f"{blue:.4f}"])
            count += 1
    return count
