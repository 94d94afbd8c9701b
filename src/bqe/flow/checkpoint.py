"""
Checkpoints: named snapshots of the answer map.

The manager keeps its own deep copy of the answers a checkpoint was
created from, and restoring hands out another deep copy, so neither the
caller's answers, the Checkpoint object handed out, nor later restores
can change a saved snapshot.
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHECKPOINTS = 50


@dataclass(frozen=True)
class Checkpoint:
    """
    Properties:
        answers_snapshot:
            Read-only view of a copy of the answers. Editing nested values
            through it never reaches the snapshot restore_checkpoint() uses.
    """

    id: str
    name: str
    node_id: str
    timestamp: datetime
    answers_snapshot: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    description: Optional[str] = None


class CheckpointManager:
    """Checkpoints in creation order; the oldest are dropped beyond max_checkpoints."""

    def __init__(self, max_checkpoints: int = DEFAULT_MAX_CHECKPOINTS):
        self.max_checkpoints = max_checkpoints
        self._checkpoints: List[Checkpoint] = []
        self._snapshots: Dict[str, Dict[str, Any]] = {}

    def create_checkpoint(self, node_id: str, name: str, answers: Mapping[str, Any],
                          description: Optional[str] = None) -> Checkpoint:
        snapshot = copy.deepcopy(dict(answers))
        checkpoint = Checkpoint(
            id=f"checkpoint-{uuid.uuid4()}",
            name=name,
            node_id=node_id,
            timestamp=datetime.now(),
            answers_snapshot=MappingProxyType(copy.deepcopy(snapshot)),
            description=description,
        )
        self._checkpoints.append(checkpoint)
        self._snapshots[checkpoint.id] = snapshot
        self._trim()
        logger.debug("Created checkpoint %s (%s) at %s", checkpoint.id, name, node_id)
        return checkpoint

    def get_checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        for checkpoint in self._checkpoints:
            if checkpoint.id == checkpoint_id:
                return checkpoint
        return None

    def get_checkpoints(self) -> List[Checkpoint]:
        return list(self._checkpoints)

    def get_latest_checkpoint(self) -> Optional[Checkpoint]:
        return self._checkpoints[-1] if self._checkpoints else None

    def restore_checkpoint(self, checkpoint_id: str) -> Optional[Dict[str, Any]]:
        """A fresh copy of the saved answers, or None for an unknown id."""
        snapshot = self._snapshots.get(checkpoint_id)
        if snapshot is None:
            return None
        return copy.deepcopy(snapshot)

    def clear_checkpoints(self) -> None:
        self._checkpoints = []
        self._snapshots = {}

    def set_max_checkpoints(self, max_checkpoints: int) -> None:
        self.max_checkpoints = max_checkpoints
        self._trim()

    def _trim(self) -> None:
        excess = len(self._checkpoints) - self.max_checkpoints
        if excess > 0:
            for checkpoint in self._checkpoints[:excess]:
                del self._snapshots[checkpoint.id]
            self._checkpoints = self._checkpoints[excess:]
