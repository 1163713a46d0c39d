"""
Checkpoint storage management.

Checkpoints are stored as separate JSON files in a directory.
Naming: cp_{entry_count:010d}_{tip_hash_prefix}.json
"""

import os
from pathlib import Path
from typing import List, Optional

from .model import ChainCheckpoint


class CheckpointStore:
    """Manage checkpoint files on disk."""

    def __init__(self, directory: str = "checkpoints"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, checkpoint: ChainCheckpoint) -> str:
        """
        Save checkpoint to disk.

        Returns:
            Path to saved checkpoint file
        """
        prefix = checkpoint.tip_hash[:8] or "genesis"
        filepath = self.directory / f"cp_{checkpoint.entry_count:010d}_{prefix}.json"
        with open(filepath, "w") as f:
            f.write(checkpoint.to_json())
        return str(filepath)

    def load(self, filepath: str) -> ChainCheckpoint:
        with open(filepath, "r") as f:
            return ChainCheckpoint.from_json(f.read())

    def list_checkpoints(self) -> List[str]:
        """
        List all checkpoint files, oldest (smallest entry_count) first.
        """
        def extract_count(path: str) -> int:
            # cp_{count}_{hash}.json
            return int(os.path.basename(path).split("_")[1])

        return sorted((str(p) for p in self.directory.glob("cp_*.json")), key=extract_count)

    def find_latest(self) -> Optional[str]:
        checkpoints = self.list_checkpoints()
        if not checkpoints:
            return None
        return checkpoints[-1]
