from threading import Lock
from typing import List, Tuple

# Perceived-progress phases only; none of them map to a real server milestone.
PHASES: List[Tuple[int, str]] = [
    (0, "Preparing audio..."),
    (20, "Processing audio fingerprint..."),
    (40, "Analyzing frequency patterns..."),
    (60, "Matching with database..."),
    (80, "Identifying track..."),
    (95, "Finalizing results..."),
    (100, "Complete!"),
]

PREPARING = 0
FINGERPRINTING = 1
ANALYZING = 2
MATCHING = 3
IDENTIFYING = 4
FINALIZING = 5
COMPLETE = 6


class ProgressTracker:
    """Monotonic percent/label pair for one run."""

    def __init__(self):
        self._lock = Lock()
        self.percent = 0
        self.label = ""

    def reset(self):
        with self._lock:
            self.percent = 0
            self.label = ""

    def advance(self, phase: int) -> bool:
        """Move to ``phase``; returns False if that would go backwards."""
        percent, label = PHASES[phase]
        with self._lock:
            if percent < self.percent or (percent == self.percent and label == self.label):
                return False
            self.percent = percent
            self.label = label
            return True

    def snapshot(self) -> Tuple[int, str]:
        with self._lock:
            return self.percent, self.label
