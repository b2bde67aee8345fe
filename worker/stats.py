"""
Upload statistics for dispatcher runs.

Counters for one run are merged into a cumulative stats.json on save, so the
file reflects every run since it was first written.
"""

import json
import os
import time
from dataclasses import dataclass, field, asdict


@dataclass
class UploadStats:
    """Counters and timings for processed upload items."""

    items_processed: int = 0
    items_uploaded: int = 0
    items_failed: int = 0
    items_to_failed: int = 0
    total_processing_time: float = 0.0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    session_start: float = field(default_factory=time.time)

    def record_success(self, processing_time: float) -> None:
        self.items_processed += 1
        self.items_uploaded += 1
        self.total_processing_time += processing_time

    def record_failure(self, error_type: str, processing_time: float, terminal: bool = False) -> None:
        """
        Record a failed upload attempt.

        Args:
            error_type: Exception class name ('UploadFailure' for a False result)
            processing_time: Seconds spent on the attempt
            terminal: The item reached the terminal failed state
        """
        self.items_processed += 1
        self.items_failed += 1
        self.total_processing_time += processing_time
        self.errors_by_type[error_type] = self.errors_by_type.get(error_type, 0) + 1
        if terminal:
            self.items_to_failed += 1

    @property
    def success_rate(self) -> float:
        """Percentage of processed items that uploaded (0.0 when none processed)."""
        if self.items_processed == 0:
            return 0.0
        return self.items_uploaded / self.items_processed * 100

    @property
    def avg_processing_time(self) -> float:
        if self.items_processed == 0:
            return 0.0
        return self.total_processing_time / self.items_processed

    def to_dict(self) -> dict:
        data = asdict(self)
        data['errors_by_type'] = dict(self.errors_by_type)
        return data

    def save_to_file(self, path: str) -> None:
        """
        Merge these counters into the cumulative stats file.

        A missing or corrupted file is replaced. The earliest session_start
        is kept. Written atomically (temp file + rename).
        """
        existing = UploadStats.load_from_file(path) if os.path.exists(path) else None

        merged = self.to_dict()
        if existing is not None:
            merged['items_processed'] += existing.items_processed
            merged['items_uploaded'] += existing.items_uploaded
            merged['items_failed'] += existing.items_failed
            merged['items_to_failed'] += existing.items_to_failed
            merged['total_processing_time'] += existing.total_processing_time
            for error_type, count in existing.errors_by_type.items():
                merged['errors_by_type'][error_type] = merged['errors_by_type'].get(error_type, 0) + count
            merged['session_start'] = min(existing.session_start, self.session_start)

        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        tmp_path = path + '.tmp'
        with open(tmp_path, 'w') as f:
            json.dump(merged, f, indent=2)
        os.replace(tmp_path, path)

    @classmethod
    def load_from_file(cls, path: str) -> 'UploadStats':
        """Load stats from file; empty stats if missing or unreadable."""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return cls()

        if not isinstance(data, dict):
            return cls()

        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        try:
            return cls(**known)
        except TypeError:
            return cls()
