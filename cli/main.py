# main.py
"""
Entry-point for the color-blob tracking system.

Live-tuning
-----------
Drag the HSV trackbars in the "Controls" window, or (headless as well) edit
``runtime_params.json``; the new color range takes effect on the next frame.
See ``blob_tracking/live_tuning.py`` for the file format.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import cv2

from blob_tracking.camera import DeviceUnavailable
from blob_tracking.config import (
    CameraConfig,
    ColorRange,
    ConfigurationError,
    DecisionConfig,
    SchedulerConfig,
    SegmentationConfig,
    SharedColorRange,
)
from blob_tracking.live_tuning import RuntimeParamWatcher
from blob_tracking.processor import TrackingProcessor
from blob_tracking.sinks import AsyncSink, FrameFileSink, LatestHandoff, SerialDirectionSink

WINDOW = "Object Tracking"
CONTROLS = "Controls"
_TRACKBARS = (
    ("Hue Start", 0, 0, 180), ("Hue Stop", 1, 0, 180),
    ("Saturation Start", 0, 1, 255), ("Saturation Stop", 1, 1, 255),
    ("Value Start", 0, 2, 255), ("Value Stop", 1, 2, 255),
)


# ────────────────────────────────────────────────────────────────────────────
#   HSV  S L I D E R S
# ────────────────────────────────────────────────────────────────────────────
class TrackbarController:
    """OpenCV trackbars acting as the color-range controller (main thread only)."""

    def __init__(self, initial: ColorRange) -> None:
        self._last = initial
        cv2.namedWindow(CONTROLS, cv2.WINDOW_NORMAL)
        bounds = (initial.lower, initial.upper)
        for name, side, channel, top in _TRACKBARS:
            cv2.createTrackbar(name, CONTROLS, bounds[side][channel], top, lambda _v: None)

    def poll(self, shared: SharedColorRange) -> None:
        values = [[0, 0, 0], [0, 0, 0]]
        for name, side, channel, _top in _TRACKBARS:
            values[side][channel] = cv2.getTrackbarPos(name, CONTROLS)
        try:
            value = ColorRange.from_values(values[0], values[1])
        except ConfigurationError:
            return  # lower above upper while dragging; keep the last valid range
        if value != self._last:
            shared.set(value)
            self._last = value


# ────────────────────────────────────────────────────────────────────────────
#   A R G S
# ────────────────────────────────────────────────────────────────────────────
def _hsv(text: str) -> List[int]:
    parts = text.split(",")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError("expected H,S,V")
    try:
        return [int(p) for p in parts]
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    default = ColorRange()
    p = argparse.ArgumentParser(description="Steer a camera toward a colored blob.")
    p.add_argument("--camera", type=int, default=0, help="camera index (0 = default)")
    p.add_argument("--fps", type=float, default=SchedulerConfig.fps)
    p.add_argument("--lower", type=_hsv, default=list(default.lower), help="H,S,V lower bound")
    p.add_argument("--upper", type=_hsv, default=list(default.upper), help="H,S,V upper bound")
    p.add_argument("--selection", choices=("last", "largest"), default="last",
                   help="multi-blob policy: last evaluated or largest area")
    p.add_argument("--diagnostics", action="store_true", help="show mask / morph previews")
    p.add_argument("--headless", action="store_true", help="no windows, print status")
    p.add_argument("--save-dir", help="write annotated frames as PNG files here")
    p.add_argument("--serial-port", help="publish direction lines on this serial port")
    p.add_argument("--baudrate", type=int, default=115_200)
    p.add_argument("--params", default="runtime_params.json", help="live-tuning JSON file")
    p.add_argument("--verbose", "-v", action="store_true")
    return p


# ────────────────────────────────────────────────────────────────────────────
#   L O O P S
# ────────────────────────────────────────────────────────────────────────────
def _run_windowed(proc: TrackingProcessor, handoff: LatestHandoff,
                  watcher: RuntimeParamWatcher, diagnostics: bool) -> None:
    sliders = TrackbarController(proc.colors.get())
    cv2.namedWindow(WINDOW, cv2.WINDOW_NORMAL)
    print("[Main] Running - press 'q' in the video window to quit.")
    while proc.running:
        if watcher.maybe_reload():
            watcher.apply_color_range(proc.colors)
        sliders.poll(proc.colors)

        out = handoff.take(timeout=0.01)
        if out is not None:
            cv2.imshow(WINDOW, out.frame)
            cv2.setWindowTitle(WINDOW, f"{WINDOW} - {out.status}")
            if diagnostics and out.mask is not None:
                cv2.imshow("Mask", out.mask)
                cv2.imshow("Morph", out.morph)
        if (cv2.waitKey(1) & 0xFF) == ord("q"):
            break


def _run_headless(proc: TrackingProcessor, handoff: LatestHandoff,
                  watcher: RuntimeParamWatcher) -> None:
    print("[Main] Running headless - Ctrl+C to quit.")
    last_status = None
    while proc.running:
        if watcher.maybe_reload():
            watcher.apply_color_range(proc.colors)
        out = handoff.take(timeout=0.5)
        if out is not None and out.status != last_status:
            print(out.status)
            last_status = out.status


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    # -------------------- Config blobs --------------------
    try:
        colors = ColorRange.from_values(args.lower, args.upper)
        dec_cfg = DecisionConfig(selection=args.selection)
    except ConfigurationError as exc:
        print(f"[Main] Configuration error: {exc}", file=sys.stderr)
        return 2
    cam_cfg = CameraConfig(device_index=args.camera)
    seg_cfg = SegmentationConfig()
    sch_cfg = SchedulerConfig(fps=args.fps, diagnostics=args.diagnostics)

    # Disk and serial writes get their own threads so they never delay a tick
    handoff = LatestHandoff()
    background: List[AsyncSink] = []
    if args.save_dir:
        background.append(AsyncSink(FrameFileSink(args.save_dir), name="frame-writer"))
    if args.serial_port:
        background.append(AsyncSink(SerialDirectionSink(args.serial_port, args.baudrate),
                                    name="direction-link"))
    sinks = [handoff, *background]

    # ------------------------ Banner ----------------------
    print(f"Camera: idx={cam_cfg.device_index}, {cam_cfg.width}x{cam_cfg.height}, "
          f"grab rate={sch_cfg.fps} FPS")
    print(f"Colors: {colors.describe()}")
    print(f"Decision: target={dec_cfg.target_width}x{dec_cfg.target_height}, "
          f"min_bbox={dec_cfg.min_bbox_width}x{dec_cfg.min_bbox_height}px, "
          f"selection={dec_cfg.selection}")
    print(f"Direction link: {args.serial_port or 'DISABLED'}")

    # ------------------------ Run -------------------------
    proc = TrackingProcessor(cam_cfg, seg_cfg, dec_cfg, sch_cfg, colors, sinks)
    watcher = RuntimeParamWatcher(args.params)
    watcher.apply_color_range(proc.colors)
    try:
        proc.start()
    except (ConfigurationError, DeviceUnavailable) as exc:
        print(f"[Main] Cannot start tracking: {exc}", file=sys.stderr)
        for sink in background:
            sink.close()
        return 1

    try:
        if args.headless:
            _run_headless(proc, handoff, watcher)
        else:
            _run_windowed(proc, handoff, watcher, args.diagnostics)
    except KeyboardInterrupt:
        print("\n[Main] Stopped by user.")
    finally:
        proc.stop()
        for sink in background:
            sink.close()
        if not args.headless:
            cv2.destroyAllWindows()
    print("Main program finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
