#!/usr/bin/env python3
"""
PPG Monitor - Command Line Application
Runs the camera PPG pipeline over a synthetic or recorded frame source

Usage:
    ppg-monitor --simulate --bpm 72 --seconds 20
    ppg-monitor --replay recordings/session.csv --json
"""

import argparse
import json
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .data.models import PipelineEvent, PipelineEventType, ProcessedPPGFrame
from .data.settings import PipelineConfig
from .pipeline.ppg_pipeline import PPGPipeline
from .sources.base_source import BaseFrameSource, SourceFrame
from .sources.replay_source import ReplayFrameSource
from .sources.synthetic_source import SyntheticFingerSource
from .utils.config_loader import ConfigLoader
from .utils.logger import get_logger, setup_logger

DEFAULT_CONFIG = "config/app_config.yaml"


class PPGMonitorApp:
    """
    Application controller: configuration -> logging -> pipeline -> frame source

    Attributes:
        args (argparse.Namespace): Parsed command line
        config (ConfigLoader): Loaded configuration
        pipeline (PPGPipeline): Processing pipeline
        source (BaseFrameSource): Frame source
        last_frame (ProcessedPPGFrame): Most recent pipeline output
    """

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.logger: logging.Logger = get_logger("app")
        self.config = ConfigLoader(config_file=args.config, env_file=args.env_file)
        self.pipeline: Optional[PPGPipeline] = None
        self.source: Optional[BaseFrameSource] = None
        self.last_frame: Optional[ProcessedPPGFrame] = None
        self.peak_count = 0
        self.vitals_history: List[Dict[str, Any]] = []
        self._stop_event = threading.Event()

    # ==================== INITIALIZATION ====================

    def load_config(self) -> bool:
        """
        Load configuration; a missing file falls back to built-in defaults

        Returns:
            bool: True if usable configuration is available
        """
        if not Path(self.args.config).exists():
            self.logger.warning(f"Configuration file not found: {self.args.config}, using defaults")
            return True

        if not self.config.load_config():
            return False
        return self.config.validate_config()

    def initialize(self) -> bool:
        """
        Set up logging, pipeline and frame source

        Returns:
            bool: True if successful
        """
        if not self.load_config():
            return False

        log_level = self.args.log_level or self.config.get('app.log_level', 'INFO')
        self.logger = setup_logger(
            name="ppg_core",
            config_path=self.args.config,
            log_level=log_level,
        )
        self.logger = get_logger("app")
        self.logger.info(f"Starting PPG monitor v{__version__}")

        try:
            pipeline_config = self.config.get_pipeline_config()
        except (TypeError, ValueError) as e:
            self.logger.error(f"Invalid pipeline configuration: {e}")
            return False

        self.pipeline = PPGPipeline(pipeline_config)
        self.pipeline.on(PipelineEventType.CALIBRATION_COMPLETE, self._on_calibration_complete)
        self.pipeline.on(PipelineEventType.PEAK_DETECTED, self._on_peak)
        self.pipeline.on(PipelineEventType.QUALITY_CHANGE, self._on_quality_change)
        self.pipeline.on(PipelineEventType.VITALS_UPDATE, self._on_vitals)

        self.source = self._create_source(pipeline_config)
        if self.source is None:
            return False
        self.source.set_frame_callback(self.handle_frame)
        return True

    def _create_source(self, pipeline_config: PipelineConfig) -> Optional[BaseFrameSource]:
        """Command line choice first, then ``sources.default`` from the config."""
        if self.args.replay:
            kind = 'replay'
        elif self.args.simulate:
            kind = 'synthetic'
        else:
            kind = self.config.get('sources.default', 'synthetic')

        if kind == 'replay':
            source_config = self.config.get_source_config('replay')
            source_config['path'] = self.args.replay or source_config.get('path')
            if not source_config['path']:
                self.logger.error("Replay source selected but no recording path configured")
                return None
            source_config['loop'] = self.args.loop or source_config.get('loop', False)
            source_config['sample_rate'] = pipeline_config.sample_rate
            source_config['realtime'] = self.args.realtime
            return ReplayFrameSource(source_config)

        source_config = self.config.get_source_config('synthetic')
        source_config['sample_rate'] = pipeline_config.sample_rate
        source_config['realtime'] = self.args.realtime
        if self.args.bpm is not None:
            source_config['bpm'] = self.args.bpm
        if self.args.noise is not None:
            source_config['noise_std'] = self.args.noise
        if self.args.seconds is not None:
            source_config['duration_s'] = self.args.seconds
        source_config.setdefault('duration_s', 30.0)
        if not self.args.realtime:
            source_config.setdefault('start_time_ms', 0.0)
        return SyntheticFingerSource(source_config)

    # ==================== FRAME & EVENT HANDLING ====================

    def handle_frame(self, source_name: str, frame: SourceFrame) -> None:
        """Frame callback: push one source frame through the pipeline."""
        if frame.pixels is not None:
            result = self.pipeline.process_frame(frame.pixels, frame.timestamp)
        elif frame.rgb is not None:
            result = self.pipeline.process_reading(*frame.rgb, timestamp=frame.timestamp)
        else:
            self.logger.warning(f"Empty frame #{frame.index} from {source_name}")
            return
        if result is not None:
            self.last_frame = result

    def _on_calibration_complete(self, event: PipelineEvent) -> None:
        calibration = event.data.get('calibration', {})
        self.logger.info(f"Calibration complete (ZLO R={calibration.get('offset_r', 0.0):.2f})")

    def _on_peak(self, event: PipelineEvent) -> None:
        self.peak_count += 1

    def _on_quality_change(self, event: PipelineEvent) -> None:
        self.logger.info(f"Signal confidence {event.data['previous']} -> {event.data['current']} "
                         f"(SQI {event.data['global_sqi']:.0f})")

    def _on_vitals(self, event: PipelineEvent) -> None:
        self.vitals_history.append(dict(event.data, timestamp=event.timestamp))
        if self.args.json:
            payload = self.last_frame.to_dict() if self.last_frame else dict(event.data)
            print(json.dumps(payload, default=str), flush=True)
        elif not self.args.quiet:
            data = event.data
            elapsed = self.pipeline.state.frames_processed / self.pipeline.config.sample_rate
            print(f"[{elapsed:7.1f}s] BPM={data['bpm']:3d}  SpO2={data['spo2']:3d}%  "
                  f"PI={data['perfusion_index']:5.2f}%  SQI={data['global_sqi']:5.1f}  "
                  f"{data['confidence']}", flush=True)

    # ==================== RUN / SHUTDOWN ====================

    def start(self) -> bool:
        """
        Initialize and run until the source is exhausted or a signal arrives

        Returns:
            bool: True on a clean run
        """
        if not self.initialize():
            self.shutdown()
            return False

        self.pipeline.start()
        if self.args.calibrate:
            self.pipeline.start_calibration()

        if not self.args.realtime:
            frames = self.source.run_blocking(self.args.max_frames)
            self.logger.info(f"Processed {frames} frames from {self.source.name}")
        else:
            if not self.source.start():
                self.shutdown()
                return False
            while not self._stop_event.is_set() and self.source.is_running:
                self._stop_event.wait(0.2)
                if self.args.max_frames and self.source.frames_read >= self.args.max_frames:
                    break

        self.shutdown()
        return True

    def shutdown(self):
        """Stop the source, report and release the pipeline."""
        if self.source is not None:
            self.source.stop()
        if self.pipeline is not None:
            self.print_report()
            self.pipeline.dispose()
            self.pipeline = None
        self.logger.info("PPG monitor stopped")

    def build_report(self) -> Dict[str, Any]:
        state = self.pipeline.state if self.pipeline else None
        frame = self.last_frame
        return {
            'frames_processed': state.frames_processed if state else 0,
            'peaks': self.peak_count,
            'bpm': frame.smoothed_bpm if frame else 0,
            'spo2': frame.spo2 if frame else 0,
            'confidence': frame.confidence.value if frame else 'INVALID',
            'rr_intervals': len(frame.rr_intervals) if frame else 0,
            'hrv': frame.hrv.to_dict() if frame else {},
            'finger_detected': frame.finger_detected if frame else False,
        }

    def print_report(self):
        report = self.build_report()
        if self.args.json:
            print(json.dumps({'report': report}), flush=True)
            return
        if self.args.quiet:
            return
        print("\n" + "=" * 60)
        print(f"  Frames processed : {report['frames_processed']}")
        print(f"  Peaks detected   : {report['peaks']}")
        print(f"  Heart rate       : {report['bpm']} BPM")
        print(f"  SpO2             : {report['spo2']} %")
        print(f"  Confidence       : {report['confidence']}")
        hrv = report['hrv']
        if hrv:
            print(f"  HRV              : SDNN={hrv['sdnn']:.1f} ms  RMSSD={hrv['rmssd']:.1f} ms  "
                  f"pNN50={hrv['pnn50']:.1f} %")
        print("=" * 60)

    def signal_handler(self, signum, frame):
        """
        Handle SIGINT/SIGTERM for graceful shutdown

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_names = {
            signal.SIGINT: "SIGINT (Ctrl+C)",
            signal.SIGTERM: "SIGTERM"
        }
        self.logger.info(f"Received {signal_names.get(signum, f'Signal {signum}')}")
        self._stop_event.set()
        if self.source is not None:
            self.source.is_running = False


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ppg-monitor",
        description="Camera PPG heart rate / SpO2 / HRV monitor",
    )
    parser.add_argument('--config', default=DEFAULT_CONFIG, help="YAML configuration file")
    parser.add_argument('--env-file', default=".env", help="Environment file for ${VAR} references")

    source = parser.add_mutually_exclusive_group()
    source.add_argument('--simulate', action='store_true', help="Use the synthetic finger source (overrides sources.default)")
    source.add_argument('--replay', metavar='CSV', help="Replay a recording (timestamp_ms,red,green,blue)")

    parser.add_argument('--seconds', type=float, help="Synthetic session length")
    parser.add_argument('--bpm', type=float, help="Synthetic pulse rate")
    parser.add_argument('--noise', type=float, help="Synthetic noise standard deviation")
    parser.add_argument('--loop', action='store_true', help="Loop the replayed recording")
    parser.add_argument('--max-frames', type=int, help="Stop after this many frames")
    parser.add_argument('--realtime', action='store_true', help="Pace frames at the sample rate")
    parser.add_argument('--calibrate', action='store_true', help="Run a zero-light calibration pass first")
    parser.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--json', action='store_true', help="Emit JSON lines instead of text")
    parser.add_argument('--quiet', action='store_true', help="Only log, no per-second output")
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point

    Returns:
        int: Process exit code
    """
    args = build_arg_parser().parse_args(argv)
    app = PPGMonitorApp(args)

    signal.signal(signal.SIGINT, app.signal_handler)
    signal.signal(signal.SIGTERM, app.signal_handler)

    try:
        success = app.start()
    except Exception as e:
        get_logger("app").exception(f"Critical error: {e}")
        print(f"Failed at {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}: {e}", file=sys.stderr)
        return 1
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
