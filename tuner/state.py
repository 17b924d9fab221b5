"""
The published tuner snapshot and the publisher that hands it to readers.
"""

from collections import namedtuple

from PySide6.QtCore import QMutex, QObject, Qt, QThread, Signal, Slot

# Immutable snapshot. Readers only ever see a whole TunerState, never a mix of
# fields from two frames.
TunerState = namedtuple(
    "TunerState",
    ["frequency_hz", "note", "deviation", "reference_hz", "locked", "calibrating"],
)


def silence_state(placeholder="--", calibrating=False):
    return TunerState(0.0, placeholder, 0.0, 0.0, False, calibrating)


# --------------------------- State Publisher ---------------------------
class StatePublisher(QObject):
    """
    Holds the latest TunerState and notifies subscribers.

    publish() swaps the snapshot under a mutex; readers either poll snapshot()
    or connect to stateChanged. Only the newest value is kept.

    Publishing from the publisher's own thread emits stateChanged directly.
    Publishing from another thread (the worker) posts at most one pending
    notification to the publisher's thread; when it is delivered it carries
    whatever snapshot is current then. At most one notification is queued.
    """
    stateChanged = Signal(object)                  # Emits the new TunerState.
    _notify = Signal()                             # Cross-thread wake-up, coalesced.

    def __init__(self, initial=None, parent=None):
        super(StatePublisher, self).__init__(parent)
        self._mutex = QMutex()
        self._state = initial if initial is not None else silence_state()
        self._pending = False
        self._notify.connect(self._deliver, Qt.QueuedConnection)

    def publish(self, state):
        if QThread.currentThread() == self.thread():
            self._mutex.lock()
            try:
                self._state = state
            finally:
                self._mutex.unlock()
            self.stateChanged.emit(state)
            return

        self._mutex.lock()
        try:
            self._state = state
            already_pending = self._pending
            self._pending = True
        finally:
            self._mutex.unlock()
        if not already_pending:
            self._notify.emit()

    @Slot()
    def _deliver(self):
        self._mutex.lock()
        try:
            self._pending = False
            state = self._state
        finally:
            self._mutex.unlock()
        self.stateChanged.emit(state)

    def snapshot(self):
        self._mutex.lock()
        try:
            return self._state
        finally:
            self._mutex.unlock()
