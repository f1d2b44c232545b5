from typing import Dict

from ..models import ContextThresholds, ThresholdLevel


class ThresholdMonitor:
    """Maps a running cost to the most severe watermark it has reached.

    The monitor is stateless between evaluations: a cost that stays above a
    watermark reports that watermark again on every evaluation.
    """

    def __init__(self, thresholds: ContextThresholds) -> None:
        self.thresholds = thresholds

    def _watermarks(self):
        t = self.thresholds
        return (
            (ThresholdLevel.HARD, t.hard_limit),
            (ThresholdLevel.ROT, t.rot_threshold),
            (ThresholdLevel.SUMMARIZATION, t.summarization_trigger),
            (ThresholdLevel.COMPACTION, t.compaction_trigger),
        )

    def evaluate(self, token_count: int) -> ThresholdLevel:
        """Return the highest level whose watermark is at or below ``token_count``."""
        for level, watermark in self._watermarks():
            if token_count >= watermark:
                return level
        return ThresholdLevel.NONE

    def status(self, token_count: int) -> Dict[str, bool]:
        t = self.thresholds
        return {
            "compaction_triggered": token_count >= t.compaction_trigger,
            "summarization_triggered": token_count >= t.summarization_trigger,
            "rot_threshold_reached": token_count >= t.rot_threshold,
            "hard_limit_reached": token_count >= t.hard_limit,
        }
