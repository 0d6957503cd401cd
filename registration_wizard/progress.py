from __future__ import annotations

from collections.abc import Sequence

from .models import ProgressEntry, StepStatus


def project(position: int, total_steps: int, labels: Sequence[str] | None = None) -> list[ProgressEntry]:
    """Per-step completion states for the progress bar."""
    if total_steps < 1:
        raise ValueError("total_steps must be positive")
    if not 0 <= position < total_steps:
        raise ValueError(f"position {position} outside [0, {total_steps - 1}]")
    if labels is not None and len(labels) != total_steps:
        raise ValueError("labels must match total_steps")

    entries: list[ProgressEntry] = []
    for index in range(total_steps):
        if index < position:
            status = StepStatus.COMPLETED
        elif index == position:
            status = StepStatus.ACTIVE
        else:
            status = StepStatus.PENDING
        label = labels[index] if labels is not None else f"Step {index + 1}"
        entries.append(ProgressEntry(index=index, label=label, status=status))
    return entries


def completion_percent(position: int, total_steps: int) -> float:
    if total_steps <= 1:
        return 100.0
    return position / (total_steps - 1) * 100
