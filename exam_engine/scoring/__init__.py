"""Score finalization: bounded total and late-submission penalty."""

from exam_engine.scoring.finalizer import finalize

__all__ = ["finalize"]
