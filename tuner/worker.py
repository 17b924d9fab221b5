"""
The processing thread and the controller that starts and stops it.
"""

import logging

from PySide6.QtCore import QMutex, QObject, QThread, Signal

from tuner.audio import AudioSourceError, MicrophoneSource
from tuner.defaults import defaults as shared_defaults
from tuner.pipeline import TunerPipeline
from tuner.state import StatePublisher, silence_state

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
STOPPING = "stopping"


# --------------------------- Audio Processing Thread ---------------------------
class TunerWorker(QThread):
    """
    QThread subclass that reads frames from a source and feeds the pipeline.

    The loop blocks on source.read_frame(), processes the frame and publishes
    the state. `running` is checked once per iteration; clearing it and closing
    the source (which wakes the blocked read) ends the loop. The source is
    released by the thread itself on the way out.
    """
    errorOccurred = Signal(str)                    # Emits a message if the source fails mid-run.
    debugMessage = Signal(str)

    def __init__(self, source, pipeline, parent=None):
        super(TunerWorker, self).__init__(parent)
        self.source = source
        self.pipeline = pipeline
        self.running = True
        self.frames_processed = 0
        self.frames_skipped = 0

    def _debug(self, message):
        logger.debug(message)
        self.debugMessage.emit(message)

    def run(self):
        """
        Main loop for the thread.
        """
        try:
            self.setPriority(QThread.TimeCriticalPriority)
        except Exception as e:
            self._debug(f"Could not set thread priority: {e}")

        try:
            while self.running:
                frame = self.source.read_frame()
                if not self.running:
                    break
                if frame is None or len(frame) == 0:
                    # Transient read failure; try again.
                    self.frames_skipped += 1
                    continue
                try:
                    self.pipeline.process_frame(frame)
                except Exception:
                    self.frames_skipped += 1
                    logger.exception("Frame processing failed; frame skipped")
                    continue
                self.frames_processed += 1
        except Exception as e:
            self.running = False
            logger.exception("Audio source failed; worker stopped")
            self.errorOccurred.emit(f"Audio source failed: {e}")
        finally:
            self.source.close()
        self._debug(f"Worker exiting after {self.frames_processed} frames ({self.frames_skipped} skipped)")

    def stop(self):
        self.running = False
        self.source.close()


# --------------------------- Tuner Controller ---------------------------
class Tuner(QObject):
    """
    Owns the worker thread and the Idle -> Running -> Stopping -> Idle cycle.

    The audio source is created and opened by start() and only held while the
    tuner is running. Readers use snapshot() or connect to stateChanged.

    Args:
        defaults (Defaults): Configuration; the shared instance if omitted.
        source_factory (callable): Builds a fresh source from the defaults; a
            MicrophoneSource by default.
    """
    stateChanged = Signal(object)                  # Re-emitted from the publisher.
    errorOccurred = Signal(str)                    # Emits error messages from start() and the worker.
    runningChanged = Signal(bool)

    def __init__(self, defaults=None, source_factory=None, clock=None, parent=None):
        super(Tuner, self).__init__(parent)
        self.defaults = defaults if defaults is not None else shared_defaults
        self.source_factory = source_factory or MicrophoneSource.from_defaults
        self.publisher = StatePublisher(silence_state(self.defaults.NOTE_PLACEHOLDER), parent=self)
        self.publisher.stateChanged.connect(self.stateChanged)
        if clock is None:
            self.pipeline = TunerPipeline(self.defaults, self.publisher)
        else:
            self.pipeline = TunerPipeline(self.defaults, self.publisher, clock=clock)
        self.worker = None
        self.source = None
        self.status = IDLE
        self.mutex = QMutex()

    def is_running(self):
        # A worker whose source failed has exited on its own; stop() still cleans up.
        return self.status == RUNNING and self.worker is not None and not self.worker.isFinished()

    def snapshot(self):
        return self.publisher.snapshot()

    def start(self):
        """
        Open the audio source and start the worker.

        Returns:
            bool: True if the tuner is running (including when it already was),
            False if the source could not be opened. Nothing is left running or
            held open on failure.
        """
        self.mutex.lock()
        try:
            if self.status != IDLE:
                return self.is_running()
            source = self.source_factory(self.defaults)
            try:
                source.open()
            except (AudioSourceError, OSError) as e:
                source.close()
                error_msg = f"Error opening audio source: {e}"
                logger.error(error_msg)
                self.errorOccurred.emit(error_msg)
                return False

            self.pipeline.reset()
            self.source = source
            self.worker = TunerWorker(source, self.pipeline)
            self.worker.errorOccurred.connect(self.errorOccurred)
            self.status = RUNNING
            self.worker.start()
        finally:
            self.mutex.unlock()
        logger.info("Tuner started")
        self.runningChanged.emit(True)
        return True

    def stop(self):
        """
        Stop the worker and release the source. Returns once the thread has exited.
        """
        self.mutex.lock()
        try:
            if self.status != RUNNING:
                return
            self.status = STOPPING
            worker = self.worker
            worker.stop()
            worker.wait()
            self.worker = None
            self.source = None
            self.pipeline.reset()
            self.status = IDLE
        finally:
            self.mutex.unlock()
        logger.info("Tuner stopped")
        self.runningChanged.emit(False)
