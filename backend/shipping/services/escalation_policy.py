"""
Per-task-type escalation policy for manual coordination.

The table lives in JSON (ESCALATION_POLICY_PATH) so intervals and
overdue thresholds can be tuned without a code change:

    {"phone_coordination": {"base_interval_minutes": 30,
                            "backoff_cap": 8,
                            "overdue_after_minutes": 240}, ...}
"""
import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from shipping.core.config import settings
from shipping.core.exceptions import ConfigurationException
from shipping.models.manual_task import TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskPolicy:
    """Reminder base interval, backoff cap and overdue threshold for one task type."""

    base_interval: timedelta
    backoff_cap: int
    overdue_after: timedelta

    def interval_after(self, reminder_count: int) -> timedelta:
        """base * min(2^count, cap)"""
        return self.base_interval * min(2 ** max(reminder_count, 0), self.backoff_cap)


class EscalationPolicy:
    """Lookup of TaskPolicy by TaskType; every task type must be present."""

    def __init__(self, policies: Mapping[TaskType, TaskPolicy]):
        missing = [t.value for t in TaskType if t not in policies]
        if missing:
            raise ConfigurationException(
                message=f"Escalation policy missing task types: {', '.join(missing)}",
                details={"missing": missing},
            )
        self._policies = dict(policies)

    def for_type(self, task_type: TaskType) -> TaskPolicy:
        return self._policies[TaskType(task_type)]

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {
            task_type.value: {
                "base_interval_minutes": int(p.base_interval.total_seconds() // 60),
                "backoff_cap": p.backoff_cap,
                "overdue_after_minutes": int(p.overdue_after.total_seconds() // 60),
            }
            for task_type, p in self._policies.items()
        }

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping[str, int]]) -> "EscalationPolicy":
        policies: dict[TaskType, TaskPolicy] = {}
        for key, entry in raw.items():
            try:
                task_type = TaskType(key)
                policy = TaskPolicy(
                    base_interval=timedelta(minutes=int(entry["base_interval_minutes"])),
                    backoff_cap=int(entry.get("backoff_cap", 8)),
                    overdue_after=timedelta(minutes=int(entry["overdue_after_minutes"])),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationException(
                    message=f"Invalid escalation policy entry '{key}': {e}",
                    details={"task_type": key},
                ) from e
            if policy.base_interval <= timedelta(0) or policy.backoff_cap < 1:
                raise ConfigurationException(
                    message=f"Escalation policy for '{key}' must have a positive interval and cap",
                    details={"task_type": key},
                )
            policies[task_type] = policy
        return cls(policies)

    @classmethod
    def from_file(cls, path: str) -> "EscalationPolicy":
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationException(
                message=f"Cannot load escalation policy from {path}: {e}",
                details={"path": path},
            ) from e
        logger.info(f"Loaded escalation policy for {len(raw)} task types from {path}")
        return cls.from_mapping(raw)


@lru_cache()
def get_escalation_policy(path: Optional[str] = None) -> EscalationPolicy:
    """Cached policy table loaded from settings."""
    return EscalationPolicy.from_file(path or settings.ESCALATION_POLICY_PATH)
