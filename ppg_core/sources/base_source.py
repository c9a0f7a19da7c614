"""
Base Frame Source Abstract Class
Common interface for everything that feeds frames into the PPG pipeline
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple
import threading
import time
import logging

import numpy as np


@dataclass
class SourceFrame:
    """
    One frame delivered by a source

    Either ``pixels`` (H, W, C>=3) or a pre-averaged ``rgb`` triple is set.
    """
    timestamp: float  # ms
    index: int
    pixels: Optional[np.ndarray] = None
    rgb: Optional[Tuple[float, float, float]] = None


FrameCallback = Callable[[str, SourceFrame], None]


class BaseFrameSource(ABC):
    """
    Abstract base class for frame sources

    Attributes:
        name (str): Source name
        config (Dict): Configuration parameters
        is_running (bool): Whether the reading thread is active
        sample_rate (float): Frame rate (Hz)
        realtime (bool): Pace the reading thread at sample_rate
        logger (logging.Logger): Logger instance
        data_lock (threading.Lock): Guards latest_frame
        latest_frame (SourceFrame): Most recent frame
        error_count (int): Consecutive errors
        timeout_count (int): Consecutive empty reads
        max_error_count (int): Errors tolerated before stopping
        frames_read (int): Frames delivered since start
        exhausted (bool): Finite source has no more frames
        frame_callback (Callable): Callback for each new frame
        reading_thread (threading.Thread): Reading thread
    """

    # ==================== INITIALIZATION & SETUP ====================

    def __init__(self, name: str, config: Dict[str, Any]):
        """
        Initialize base source

        Args:
            name: Source name
            config: Source configuration
                - sample_rate (float): Frame rate (Hz), default 30
                - realtime (bool): Pace frames in wall-clock time (default True)
                - max_error_count (int): Errors before the loop stops (default 10)
        """
        self.name = name
        self.config = config
        self.is_running = False

        self.sample_rate = float(config.get('sample_rate', 30.0))
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        self.realtime = bool(config.get('realtime', True))

        self.logger = logging.getLogger(f"{__name__}.{name}")

        self.data_lock = threading.Lock()
        self.latest_frame: Optional[SourceFrame] = None

        self.error_count = 0
        self.timeout_count = 0
        self.max_error_count = int(config.get('max_error_count', 10))

        self.frames_read = 0
        self.exhausted = False
        self.frame_callback: Optional[FrameCallback] = None
        self.reading_thread: Optional[threading.Thread] = None

        self.logger.info(f"Initialized {name} source @ {self.sample_rate} Hz")

    # ==================== LIFECYCLE MANAGEMENT ====================

    def start(self) -> bool:
        """
        Start delivering frames on a background thread

        Returns:
            bool: True if started
        """
        if self.is_running:
            self.logger.warning(f"{self.name} source is already running")
            return True

        if not self.initialize():
            self.logger.error(f"Failed to initialize {self.name} source")
            return False

        self.is_running = True
        self.error_count = 0
        self.timeout_count = 0
        self.frames_read = 0
        self.exhausted = False

        self.reading_thread = threading.Thread(target=self._reading_loop, daemon=True)
        self.reading_thread.start()

        self.logger.info(f"Started {self.name} source")
        return True

    def stop(self) -> bool:
        """
        Stop the reading thread and release resources

        Returns:
            bool: True if stopped
        """
        if not self.is_running and self.reading_thread is None:
            return True

        self.is_running = False
        if (self.reading_thread and self.reading_thread.is_alive()
                and self.reading_thread is not threading.current_thread()):
            self.reading_thread.join(timeout=2.0)
        self.reading_thread = None

        try:
            self.cleanup()
        except Exception as e:
            self.logger.error(f"Error during cleanup: {e}")

        self.logger.info(f"Stopped {self.name} source ({self.frames_read} frames)")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the reading thread ends (finite sources)

        Returns:
            bool: True if the thread has finished
        """
        thread = self.reading_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # ==================== SOURCE HOOKS ====================

    @abstractmethod
    def initialize(self) -> bool:
        """
        Prepare the source (open files, seed generators)

        Returns:
            bool: True if ready
        """
        pass

    @abstractmethod
    def cleanup(self):
        """
        Release resources when the source stops

        NOTE: Must not raise; log problems instead
        """
        pass

    @abstractmethod
    def read_frame(self) -> Optional[SourceFrame]:
        """
        Produce the next frame

        Returns:
            SourceFrame, or None when no frame is available (set ``exhausted`` when finished)
        """
        pass

    # ==================== DATA HANDLING ====================

    def get_latest_frame(self) -> Optional[SourceFrame]:
        with self.data_lock:
            return self.latest_frame

    def set_frame_callback(self, callback: FrameCallback):
        """
        Set callback for new frames

        Args:
            callback: Function receiving (source_name, frame)
        """
        self.frame_callback = callback

    def _deliver(self, frame: SourceFrame) -> None:
        with self.data_lock:
            self.latest_frame = frame
        self.frames_read += 1

        if self.frame_callback:
            try:
                self.frame_callback(self.name, frame)
            except Exception as e:
                self.logger.error(f"Error in frame callback: {e}")

        self.error_count = 0
        self.timeout_count = 0

    def run_blocking(self, max_frames: Optional[int] = None) -> int:
        """
        Deliver frames synchronously on the caller's thread (no pacing)

        Args:
            max_frames: Stop after this many frames (None = until exhausted)

        Returns:
            int: Number of frames delivered
        """
        if not self.initialize():
            self.logger.error(f"Failed to initialize {self.name} source")
            return 0

        self.frames_read = 0
        self.exhausted = False
        self.is_running = True
        try:
            while self.is_running and (max_frames is None or self.frames_read < max_frames):
                frame = self.read_frame()
                if frame is None:
                    if self.exhausted:
                        break
                    self._handle_timeout("read_frame() returned None")
                    if self.timeout_count >= self.max_error_count:
                        break
                    continue
                self._deliver(frame)
        finally:
            self.is_running = False
            try:
                self.cleanup()
            except Exception as e:
                self.logger.error(f"Error during cleanup: {e}")

        return self.frames_read

    # ==================== READING LOOP ====================

    def _reading_loop(self):
        """Main reading loop running on its own thread."""
        period = 1.0 / self.sample_rate

        while self.is_running:
            try:
                start_time = time.time()

                frame = self.read_frame()
                if frame is not None:
                    self._deliver(frame)
                elif self.exhausted:
                    self.logger.info(f"{self.name} source exhausted after {self.frames_read} frames")
                    self.is_running = False
                    break
                else:
                    self._handle_timeout("read_frame() returned None")

                if self.realtime:
                    remaining = period - (time.time() - start_time)
                    if remaining > 0:
                        time.sleep(remaining)

            except Exception as e:
                self._handle_error(f"Exception in reading loop: {e}")
                time.sleep(period)

    def _handle_timeout(self, msg: str):
        """
        Handle an empty read (does not count as an error)

        Args:
            msg: Timeout message
        """
        self.timeout_count += 1
        if self.timeout_count % 10 == 0:
            self.logger.warning(f"{self.name} timeout ({self.timeout_count} consecutive): {msg}")

    def _handle_error(self, error_msg: str):
        """
        Handle source errors

        Args:
            error_msg: Error message
        """
        self.error_count += 1
        self.logger.error(f"{self.name} source error ({self.error_count}/{self.max_error_count}): {error_msg}")

        if self.error_count >= self.max_error_count:
            self.logger.critical(f"{self.name} source exceeded max error count, stopping")
            self.is_running = False

    # ==================== UTILITY METHODS ====================

    def reset_error_count(self):
        self.error_count = 0
        self.timeout_count = 0

    def get_source_info(self) -> Dict[str, Any]:
        """
        Get source information

        Returns:
            Dict with source information
        """
        return {
            'name': self.name,
            'is_running': self.is_running,
            'sample_rate': self.sample_rate,
            'realtime': self.realtime,
            'frames_read': self.frames_read,
            'exhausted': self.exhausted,
            'error_count': self.error_count,
            'timeout_count': self.timeout_count,
            'max_error_count': self.max_error_count,
            'has_data': self.latest_frame is not None,
            'config': dict(self.config),
        }

    def get_status(self) -> str:
        """
        Get current source status

        Returns:
            Status string: 'running', 'stopped', 'error', 'exhausted', 'initializing'
        """
        if self.exhausted:
            return 'exhausted'
        if not self.is_running:
            return 'error' if self.error_count >= self.max_error_count else 'stopped'
        if self.latest_frame is None:
            return 'initializing'
        return 'running'
