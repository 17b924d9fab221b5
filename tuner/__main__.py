"""
Console tuner: prints the published note, frequency and deviation.

    python -m tuner                     # default microphone
    python -m tuner --list-devices
    python -m tuner --device 3
    python -m tuner --tone 110          # synthetic A2, no audio hardware needed
"""

import argparse
import logging
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from tuner.audio import AudioSourceError, ToneSource, list_input_devices
from tuner.defaults import DEFAULT_CONFIG_PATH, Defaults
from tuner.worker import Tuner

PRINT_INTERVAL_MS = 100


def needle(deviation, width=25, span=50):
    # ASCII needle bar centered at 0; span = +/- span
    mid = width // 2
    c = max(-span, min(span, deviation))
    s = ["-"] * width
    s[mid] = "|"
    caret = max(0, min(width - 1, mid + int(round((c / span) * mid))))
    s[caret] = "^"
    return "[" + "".join(s) + "]"


def format_state(state, unit):
    if state.calibrating:
        return "(calibrating noise floor...)"
    if state.frequency_hz <= 0:
        return "(listening...)"
    lock = "*" if state.locked else " "
    suffix = "ct" if unit == "cents" else "Hz"
    return (f"{state.note:>4}{lock} {state.frequency_hz:7.1f} Hz  "
            f"ref {state.reference_hz:7.1f} Hz  {state.deviation:+5.1f} {suffix}  "
            f"{needle(state.deviation)}")


def parse_args(argv=None):
    ap = argparse.ArgumentParser(prog="tuner", description="Real-time string instrument tuner (terminal readout)")
    ap.add_argument("--device", type=int, default=None, help="Input device index (see --list-devices)")
    ap.add_argument("--list-devices", action="store_true", help="List audio input devices and exit")
    ap.add_argument("--tone", type=float, default=None, metavar="HZ", help="Use a synthetic sine tone instead of the microphone")
    ap.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="JSON configuration file")
    ap.add_argument("--save-config", action="store_true", help="Write the effective configuration to --config and exit")
    ap.add_argument("--duration", type=float, default=None, metavar="SEC", help="Stop after this many seconds")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list_devices:
        try:
            for index, name, hostapi in list_input_devices():
                print(f"{index:3d}  [{hostapi}] {name}")
        except AudioSourceError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    defaults = Defaults()
    defaults.LoadConfigFromFile(args.config)
    if args.device is not None:
        defaults.INPUT_DEVICE = args.device
    try:
        defaults.validate()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    if args.save_config:
        defaults.SaveConfigToFile(args.config)
        return 0

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    source_factory = None
    if args.tone is not None:
        source_factory = lambda d: ToneSource.from_defaults(d, args.tone, noise=50.0, lead_in=d.CALIBRATION_FRAMES)
    tuner = Tuner(defaults, source_factory=source_factory)
    tuner.errorOccurred.connect(lambda msg: print(msg, file=sys.stderr))
    if not tuner.start():
        print("Tip: try `python -m tuner --list-devices` and select a valid input index.", file=sys.stderr)
        return 1

    def show():
        sys.stdout.write("\r" + format_state(tuner.snapshot(), defaults.DEVIATION_UNIT).ljust(90))
        sys.stdout.flush()

    # The timer also hands control back to Python so SIGINT is noticed.
    timer = QTimer()
    timer.timeout.connect(show)
    timer.start(PRINT_INTERVAL_MS)
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    if args.duration is not None:
        QTimer.singleShot(int(args.duration * 1000), app.quit)

    app.exec()
    tuner.stop()
    print("\nBye!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
