# src/outreach_assistant/tasks/orchestrator.py

from __future__ import annotations

"""
Messaging task orchestrator.

Owns the task/target state machine:
- creates a task per outreach, one target per recipient,
- mirrors every tracked recipient into a task owned by that recipient,
- moves targets through pending -> awaiting_response -> responded (or failed/canceled/completed),
- recomputes the aggregate task status after every change.

Primary/mirror consistency is read-compute-write without locking. Concurrent writers on one
task pair are rare (one owner, one recipient); the pair is eventually consistent.
"""

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from ..config import OutreachConfig
from ..core.identity import conversation_id as default_conversation_id
from ..core.ports import TaskRepo
from .task_models import (
    TERMINAL_TASK_STATUSES,
    CreatedTask,
    MessagingRecipient,
    MessagingTask,
    OpResult,
    ResponseNotification,
    TargetData,
    TargetResponse,
    TargetRole,
    TargetStatus,
    TaskStatus,
    TaskTarget,
    derive_title,
    make_snippet,
)
from .task_store import NewTarget

logger = logging.getLogger(__name__)

DEFAULT_KIND = "assistant_broadcast"

# Mirror targets in these states already carry the final answer; propagation leaves them alone.
_MIRROR_SETTLED = frozenset({TargetStatus.RESPONDED, TargetStatus.COMPLETED})
_UNRESOLVED = frozenset({TargetStatus.PENDING, TargetStatus.AWAITING_RESPONSE})


@dataclass(slots=True, frozen=True)
class StatusCounts:
    tracked: int = 0
    unresolved: int = 0
    responded: int = 0
    failed: int = 0
    canceled: int = 0


def count_targets(targets: Iterable[TaskTarget]) -> StatusCounts:
    tracked = unresolved = responded = failed = canceled = 0
    for target in targets:
        if not target.tracked:
            continue
        tracked += 1
        if target.status in _UNRESOLVED:
            unresolved += 1
        elif target.status == TargetStatus.RESPONDED:
            responded += 1
        elif target.status == TargetStatus.FAILED:
            failed += 1
        elif target.status == TargetStatus.CANCELED:
            canceled += 1
    return StatusCounts(tracked, unresolved, responded, failed, canceled)


def compute_task_status(targets: Iterable[TaskTarget]) -> TaskStatus:
    """
    Aggregate status over tracked targets only.

    - no tracked targets -> completed
    - everyone responded, or nobody left to wait on -> partial if some failed and not all
      responded, else completed
    - otherwise -> awaiting_responses
    """
    counts = count_targets(targets)
    if counts.tracked == 0:
        return TaskStatus.COMPLETED
    if counts.responded >= counts.tracked or counts.unresolved == 0:
        if counts.failed > 0 and counts.responded < counts.tracked:
            return TaskStatus.PARTIAL
        return TaskStatus.COMPLETED
    return TaskStatus.AWAITING_RESPONSES


class TaskOrchestrator:
    def __init__(
        self,
        store: TaskRepo,
        config: OutreachConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        conversation_id: Callable[[str, str], str] = default_conversation_id,
    ) -> None:
        self._store = store
        self._config = config or OutreachConfig()
        self._clock = clock
        self._conversation_id = conversation_id

    @property
    def store(self) -> TaskRepo:
        return self._store

    @property
    def config(self) -> OutreachConfig:
        return self._config

    def now(self) -> float:
        return self._clock()

    def conversation_for(self, user_a: str, user_b: str) -> str:
        return self._conversation_id(user_a, user_b)

    # ---- creation ----

    async def create_messaging_task(
        self,
        *,
        owner_user_id: str,
        recipients: list[MessagingRecipient],
        prompt: str,
        kind: str = DEFAULT_KIND,
        payload: dict | None = None,
        owner_name: str | None = None,
    ) -> CreatedTask:
        now = self.now()
        assistant_user_id = self._config.assistant_user_id
        title = derive_title(prompt)
        kind = (kind or DEFAULT_KIND).strip() or DEFAULT_KIND

        task = self._store.insert_task(
            owner_user_id=owner_user_id,
            assistant_user_id=assistant_user_id,
            kind=kind,
            status=TaskStatus.MESSAGING,
            prompt=prompt,
            payload={**(payload or {}), "title": title},
            now_ts=now,
        )

        mirrors: dict[str, MessagingTask] = {}
        rows: list[NewTarget] = []
        for recipient in recipients:
            conv_id = self._conversation_id(owner_user_id, recipient.user_id)
            mirror_task_id: str | None = None
            if recipient.track_responses:
                mirror = self._create_mirror(
                    task,
                    recipient=recipient,
                    conversation_id=conv_id,
                    owner_name=owner_name,
                    now=now,
                )
                mirrors[recipient.user_id] = mirror
                mirror_task_id = mirror.id

            rows.append(
                NewTarget(
                    task_id=task.id,
                    owner_user_id=owner_user_id,
                    target_user_id=recipient.user_id,
                    conversation_id=conv_id,
                    status=TargetStatus.PENDING,
                    data=TargetData(
                        role=TargetRole.PRIMARY,
                        name=recipient.name,
                        track_responses=recipient.track_responses,
                        context=recipient.context,
                        mirror_task_id=mirror_task_id,
                    ),
                )
            )

        targets = self._store.insert_targets(rows, now_ts=now)
        logger.info(
            "Messaging task created id=%s owner=%s kind=%s targets=%d mirrors=%d",
            task.id,
            owner_user_id,
            kind,
            len(targets),
            len(mirrors),
        )
        return CreatedTask(task=task, targets=targets, mirrors=mirrors)

    def _create_mirror(
        self,
        task: MessagingTask,
        *,
        recipient: MessagingRecipient,
        conversation_id: str,
        owner_name: str | None,
        now: float,
    ) -> MessagingTask:
        mirror = self._store.insert_task(
            owner_user_id=recipient.user_id,
            assistant_user_id=task.assistant_user_id,
            kind=task.kind,
            status=TaskStatus.AWAITING_RESPONSES,
            prompt=task.prompt,
            payload={
                "title": task.title,
                "mirror_of": task.id,
                "originator_user_id": task.owner_user_id,
            },
            now_ts=now,
        )
        self._store.insert_targets(
            [
                NewTarget(
                    task_id=mirror.id,
                    owner_user_id=recipient.user_id,
                    target_user_id=task.owner_user_id,
                    conversation_id=conversation_id,
                    status=TargetStatus.AWAITING_RESPONSE,
                    data=TargetData(
                        role=TargetRole.MIRROR,
                        name=owner_name,
                        track_responses=True,
                        mirror_task_id=task.id,
                        originator_user_id=task.owner_user_id,
                        originator_name=owner_name,
                    ),
                )
            ],
            now_ts=now,
        )
        return mirror

    # ---- transitions ----

    async def mark_recipient_messaged(self, target: TaskTarget, message_id: str) -> TaskTarget:
        next_status = TargetStatus.AWAITING_RESPONSE if target.tracked else TargetStatus.COMPLETED
        now = self.now()
        updated = self._store.update_target(
            target.id, status=next_status, message_id=message_id, now_ts=now
        )
        logger.info("Target %s -> %s (task=%s)", target.id, next_status.value, target.task_id)

        mirror = self._linked_target(updated)
        if mirror is not None and mirror.status not in _MIRROR_SETTLED:
            self._store.update_target(mirror.id, status=next_status, message_id=message_id, now_ts=now)

        await self._refresh_pair(updated, mirror)
        return updated

    async def mark_recipient_failed(self, target: TaskTarget, error: str) -> TaskTarget:
        now = self.now()
        data = target.data.copy()
        data.errors.append(error)
        updated = self._store.update_target(target.id, status=TargetStatus.FAILED, data=data, now_ts=now)
        logger.info("Target %s -> failed (task=%s): %s", target.id, target.task_id, error)

        mirror = self._linked_target(updated)
        if mirror is not None and mirror.status not in _MIRROR_SETTLED:
            mirror_data = mirror.data.copy()
            mirror_data.errors.append(error)
            self._store.update_target(mirror.id, status=TargetStatus.FAILED, data=mirror_data, now_ts=now)

        await self._refresh_pair(updated, mirror)
        return updated

    async def record_recipient_response(
        self,
        target: TaskTarget,
        *,
        message_id: str,
        body: str,
        received_at: float,
    ) -> ResponseNotification | None:
        if not target.tracked:
            return None

        # An empty snippet would be dropped on read and leave `responded` without a response.
        snippet = make_snippet(body) or "(no text)"
        response = TargetResponse(message_id=message_id, message=snippet, received_at=float(received_at))
        now = self.now()

        updated = self._store.update_target(
            target.id,
            status=TargetStatus.RESPONDED,
            last_response_message_id=message_id,
            last_response_at=response.received_at,
            data=_with_response(target.data, response),
            now_ts=now,
        )
        logger.info("Target %s -> responded (task=%s)", target.id, target.task_id)

        mirror = self._linked_target(updated)
        if mirror is not None:
            self._store.update_target(
                mirror.id,
                status=TargetStatus.RESPONDED,
                last_response_message_id=message_id,
                last_response_at=response.received_at,
                data=_with_response(mirror.data, response),
                now_ts=now,
            )

        task = await self._refresh_pair(updated, mirror)
        outstanding = sum(
            1
            for t in self._store.list_targets_by_task(updated.task_id)
            if t.tracked and t.status in _UNRESOLVED
        )
        return ResponseNotification(
            owner_user_id=updated.owner_user_id,
            assistant_user_id=task.assistant_user_id,
            target_user_id=updated.target_user_id,
            target_name=updated.data.name,
            task_id=updated.task_id,
            snippet=snippet,
            outstanding_count=outstanding,
        )

    async def refresh_task_status(self, task_id: str) -> MessagingTask:
        task = self._store.require_task(task_id)
        if task.status == TaskStatus.CANCELED:
            return task

        status = compute_task_status(self._store.list_targets_by_task(task_id))
        if status in (TaskStatus.COMPLETED, TaskStatus.PARTIAL):
            completed_at = task.completed_at if task.completed_at is not None else self.now()
        else:
            completed_at = None

        if status == task.status and completed_at == task.completed_at:
            return task

        logger.debug("Task %s status %s -> %s", task_id, task.status.value, status.value)
        return self._store.update_task(task_id, status=status, completed_at=completed_at, now_ts=self.now())

    async def _refresh_pair(self, target: TaskTarget, mirror: TaskTarget | None) -> MessagingTask:
        task = await self.refresh_task_status(target.task_id)
        if mirror is not None:
            await self.refresh_task_status(mirror.task_id)
        return task

    def _linked_target(self, target: TaskTarget) -> TaskTarget | None:
        """
        Counterpart of a target in its mirror task (and vice versa).

        The link is symmetric: the counterpart lives in `mirror_task_id`, is owned by this
        target's recipient and points back at this target's owner.
        """
        mirror_task_id = target.data.mirror_task_id
        if not mirror_task_id:
            return None
        for candidate in self._store.list_targets_by_task(mirror_task_id):
            if (
                candidate.owner_user_id == target.target_user_id
                and candidate.target_user_id == target.owner_user_id
            ):
                return candidate
        logger.warning(
            "Mirror target missing for target=%s mirror_task=%s", target.id, mirror_task_id
        )
        return None

    # ---- owner operations ----

    async def cancel_assistant_task(self, owner_user_id: str, task_id: str) -> OpResult:
        task = self._store.get_task(task_id)
        if task is None:
            return OpResult.failure(404, "Task not found.")
        if task.owner_user_id != owner_user_id:
            return OpResult.failure(403, "Only the task owner can cancel this task.")
        if task.status in TERMINAL_TASK_STATUSES:
            return OpResult.failure(409, f"Task is already {task.status.value}.")

        now = self.now()
        touched_mirror_tasks: set[str] = set()
        for target in self._store.list_targets_by_task(task_id):
            if target.status.is_terminal:
                continue
            updated = self._store.update_target(target.id, status=TargetStatus.CANCELED, now_ts=now)
            mirror = self._linked_target(updated)
            if mirror is None or mirror.status in _MIRROR_SETTLED or mirror.status == TargetStatus.CANCELED:
                continue
            self._store.update_target(mirror.id, status=TargetStatus.CANCELED, now_ts=now)
            touched_mirror_tasks.add(mirror.task_id)

        for mirror_task_id in touched_mirror_tasks:
            await self._settle_canceled_mirror(mirror_task_id)

        canceled = self._store.update_task(
            task_id, status=TaskStatus.CANCELED, completed_at=None, now_ts=now
        )
        logger.info("Task %s canceled by owner=%s", task_id, owner_user_id)
        return OpResult.success(task=canceled)

    async def _settle_canceled_mirror(self, task_id: str) -> None:
        counts = count_targets(self._store.list_targets_by_task(task_id))
        if counts.tracked and counts.canceled == counts.tracked:
            self._store.update_task(task_id, status=TaskStatus.CANCELED, completed_at=None, now_ts=self.now())
            return
        await self.refresh_task_status(task_id)

    async def remove_assistant_task(self, owner_user_id: str, task_id: str) -> OpResult:
        task = self._store.get_task(task_id)
        if task is None:
            return OpResult.failure(404, "Task not found.")
        if task.owner_user_id != owner_user_id:
            return OpResult.failure(403, "Only the task owner can remove this task.")
        if task.status not in TERMINAL_TASK_STATUSES:
            return OpResult.failure(409, "Task is still active. Cancel it before removing.")

        removed = self._store.delete_targets_for_task(task_id)
        removed += self._store.delete_task(task_id)
        logger.info("Task %s removed by owner=%s rows=%d", task_id, owner_user_id, removed)
        return OpResult.success(task=task, removed=removed)

    # ---- queries ----

    async def find_awaiting_targets_for_conversation(
        self, *, owner_user_id: str, conversation_id: str
    ) -> list[TaskTarget]:
        """Primary targets of this owner still waiting on a reply in the conversation."""
        targets = self._store.list_targets_by_conversation(
            owner_user_id=owner_user_id,
            conversation_id=conversation_id,
            statuses=[TargetStatus.AWAITING_RESPONSE],
        )
        return [t for t in targets if t.tracked and t.data.role == TargetRole.PRIMARY]

    async def get_task(self, task_id: str) -> MessagingTask | None:
        return self._store.get_task(task_id)

    async def list_targets(self, task_id: str) -> list[TaskTarget]:
        return self._store.list_targets_by_task(task_id)

    async def list_tasks(
        self, owner_user_id: str, *, include_completed: bool = False, limit: int = 20
    ) -> list[MessagingTask]:
        statuses = None if include_completed else [s for s in TaskStatus if not s.is_terminal]
        return self._store.list_tasks_for_owner(owner_user_id, statuses=statuses, limit=limit)


def _with_response(data: TargetData, response: TargetResponse) -> TargetData:
    out = data.copy()
    if not any(r.message_id == response.message_id for r in out.responses):
        out.responses.append(response)
    return out
