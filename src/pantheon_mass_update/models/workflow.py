"""
Data model for asynchronous Pantheon workflows
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class WorkflowState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Workflow:
    """
    Snapshot of a remote long-running operation
    """
    id: str
    site_id: str
    type: str = ''
    result: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @classmethod
    def from_api(cls, site_id: str, data: dict) -> "Workflow":
        return cls(
            id=data['id'],
            site_id=data.get('site_id') or site_id,
            type=data.get('type', ''),
            result=data.get('result'),
            started_at=data.get('started_at'),
            finished_at=data.get('finished_at'),
        )

    @property
    def state(self) -> WorkflowState:
        """Derive the lifecycle state from the raw result fields"""
        if self.result == 'succeeded':
            return WorkflowState.SUCCEEDED
        if self.result or self.finished_at:
            # 'failed', 'aborted' or finished without a success result
            return WorkflowState.FAILED
        if self.started_at:
            return WorkflowState.RUNNING
        return WorkflowState.PENDING

    @property
    def is_finished(self) -> bool:
        return self.state in (WorkflowState.SUCCEEDED, WorkflowState.FAILED)

    @property
    def is_successful(self) -> bool:
        return self.state is WorkflowState.SUCCEEDED
