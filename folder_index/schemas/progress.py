"""Job progress schema."""

from __future__ import annotations

from typing import Literal

from folder_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'TERMINAL_PHASES',
    'TaskPhase',
    'TaskProgressState',
]

type TaskPhase = Literal['idle', 'scheduled', 'parsing', 'summarizing', 'embedding', 'completed', 'error']

TERMINAL_PHASES: frozenset[TaskPhase] = frozenset({'completed', 'error'})


class TaskProgressState(StrictModel):
    """Progress of the embedding job for one folder.

    total_files/processed_files count documents in the current phase.
    percent uses coarse fixed values (5/10/15) until totals are known.
    """

    folder_name: str
    phase: TaskPhase
    job_id: str | None = None
    total_files: int = 0
    processed_files: int = 0
    total_tokens_output: int = 0
    percent: float = 0.0
    message: str | None = None
    error: str | None = None
    started_at: JsonDatetime
    updated_at: JsonDatetime
