from __future__ import annotations

import enum


class ScopeLevel(str, enum.Enum):
    system = "system"
    user = "user"
    category = "category"
    container = "container"
    sub_unit = "sub_unit"
    block = "block"

    @property
    def code(self) -> int:
        return _SCOPE_LEVEL_CODES[self.value]


_SCOPE_LEVEL_CODES = {"system": 10, "user": 30, "category": 40, "container": 50, "sub_unit": 70, "block": 80}


class JobState(str, enum.Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"
    continued = "continued"


class ConflictPolicy(str, enum.Enum):
    reject = "reject"
    merge = "merge"
