# src/outreach_assistant/tasks/reminders.py

from __future__ import annotations

"""
Reminder sweeper.

A batch job over targets still waiting on a reply:
- selects awaiting targets not updated for `threshold_hours`, oldest first,
- skips targets already reminded inside the same window,
- posts a reminder to the target's task owner in their assistant conversation,
- stamps reminded_at / reminder_count on the target.

Delivery failures are isolated per target. There is no per-target lease: two sweepers
running at once can both remind the same target.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..core.ports import MessagingGateway
from .orchestrator import TaskOrchestrator
from .summary import format_reminder
from .task_models import TargetStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReminderSweepResult:
    examined: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


async def run_reminder_sweep(
    orchestrator: TaskOrchestrator,
    gateway: MessagingGateway,
    *,
    threshold_hours: float | None = None,
    limit: int | None = None,
) -> ReminderSweepResult:
    config = orchestrator.config
    hours = config.reminder_threshold_hours if threshold_hours is None else float(threshold_hours)
    batch = config.reminder_limit if limit is None else int(limit)

    store = orchestrator.store
    now = orchestrator.now()
    cutoff = now - max(0.0, hours) * 3600.0
    result = ReminderSweepResult()

    targets = store.list_stale_targets(
        status=TargetStatus.AWAITING_RESPONSE,
        updated_before=cutoff,
        limit=max(1, batch),
    )

    for target in targets:
        result.examined += 1

        if target.data.reminded_at is not None and target.data.reminded_at > cutoff:
            result.skipped += 1
            continue

        task = store.get_task(target.task_id)
        if task is None or task.status.is_terminal:
            result.skipped += 1
            continue

        try:
            await gateway.send_message(
                conversation_id=orchestrator.conversation_for(task.owner_user_id, task.assistant_user_id),
                sender_id=task.assistant_user_id,
                body=format_reminder(task, target),
            )
            data = target.data.copy()
            data.reminded_at = now
            data.reminder_count += 1
            store.update_target(target.id, data=data, now_ts=now)
            result.sent += 1
            logger.info(
                "Reminder sent target=%s task=%s owner=%s count=%d",
                target.id,
                task.id,
                task.owner_user_id,
                data.reminder_count,
            )
        except Exception:
            result.failed += 1
            logger.exception("Reminder failed target=%s task=%s", target.id, target.task_id)

    if result.examined:
        logger.info(
            "Reminder sweep done examined=%d sent=%d skipped=%d failed=%d",
            result.examined,
            result.sent,
            result.skipped,
            result.failed,
        )
    return result


async def run_reminder_loop(
    orchestrator: TaskOrchestrator,
    gateway: MessagingGateway,
    *,
    interval_seconds: float | None = None,
    threshold_hours: float | None = None,
    limit: int | None = None,
) -> None:
    """
    Simple polling loop around run_reminder_sweep.

    To stop it, cancel the coroutine/task.
    """
    interval = orchestrator.config.reminder_interval_seconds if interval_seconds is None else interval_seconds
    sleep_s = max(0.5, float(interval))

    while True:
        try:
            await run_reminder_sweep(
                orchestrator,
                gateway,
                threshold_hours=threshold_hours,
                limit=limit,
            )
        except Exception:
            logger.exception("Reminder sweep crashed")

        await asyncio.sleep(sleep_s)
