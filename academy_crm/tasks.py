"""
Background task dispatch

Follow-up work (replacement meetings, notifications, cycle completion) goes
through the arq queue with deterministic job ids so retries and double
submissions collapse into one job. When Redis is unreachable the job runs
in-process after the response instead.
"""

import logging
from typing import Optional

from arq import ArqRedis, create_pool
from fastapi import BackgroundTasks

from .config import ADMIN_WHATSAPP_PHONE
from .models import Meeting

logger = logging.getLogger(__name__)

_pool: Optional[ArqRedis] = None


async def get_queue_pool() -> ArqRedis:
    global _pool
    if _pool is None:
        from .worker import get_redis_settings

        _pool = await create_pool(get_redis_settings())
    return _pool


async def run_task_inline(function: str, *args) -> None:
    """Execute a worker task in this process; errors are logged, not raised"""
    from .worker import TASKS

    try:
        await TASKS[function]({}, *args)
    except Exception as e:
        logger.error(f"❌ Inline task {function} failed: {e}")


async def enqueue_task(
    function: str,
    *args,
    job_id: Optional[str] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Optional[str]:
    """
    Queue a worker task.

    Returns the job id, or None when the task was deferred in-process or dropped.
    """
    try:
        pool = await get_queue_pool()
        job = await pool.enqueue_job(function, *args, _job_id=job_id)
        if job is None:
            # arq returns None when a job with this id is already queued or finished
            logger.info(f"🔁 Task {function} ({job_id}) already queued")
            return job_id
        logger.info(f"📋 Task queued: {function} ({job.job_id})")
        return job.job_id
    except Exception as e:
        if background_tasks is not None:
            logger.warning(f"⚠️ Queue unavailable ({e}), running {function} after the response")
            background_tasks.add_task(run_task_inline, function, *args)
        else:
            logger.error(f"❌ Failed to queue {function}: {e}")
        return None


# ============================================================================
# FOLLOW-UPS
# ============================================================================


async def dispatch_replacement(
    meeting_id: str, actor_id: Optional[str], background_tasks: Optional[BackgroundTasks] = None
) -> Optional[str]:
    return await enqueue_task(
        "create_replacement_meeting_task",
        meeting_id,
        actor_id,
        job_id=f"replacement:{meeting_id}",
        background_tasks=background_tasks,
    )


async def dispatch_completion_followups(
    meeting: Meeting, background_tasks: Optional[BackgroundTasks] = None
) -> None:
    """Negative-profit alert and cycle completion after a meeting is completed"""
    if meeting.profit is not None and meeting.profit < 0 and ADMIN_WHATSAPP_PHONE:
        cycle_name = meeting.cycle.name if meeting.cycle else meeting.cycle_id
        message = (
            f"⚠️ Negative profit on {cycle_name} ({meeting.scheduled_date.isoformat()}): "
            f"revenue {meeting.revenue}, instructor payment {meeting.instructor_payment}, "
            f"profit {meeting.profit}"
        )
        await enqueue_task(
            "send_whatsapp_task",
            ADMIN_WHATSAPP_PHONE,
            message,
            job_id=f"negative-profit:{meeting.id}",
            background_tasks=background_tasks,
        )

    if meeting.cycle is not None and meeting.cycle.remaining_meetings == 0 and meeting.cycle.status == "active":
        await enqueue_task(
            "cycle_completion_task",
            meeting.cycle_id,
            job_id=f"cycle-completion:{meeting.cycle_id}",
            background_tasks=background_tasks,
        )


async def dispatch_email(
    to: str,
    subject: str,
    mjml_content: str,
    job_id: Optional[str] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> Optional[str]:
    return await enqueue_task(
        "send_email_task", to, subject, mjml_content, job_id=job_id, background_tasks=background_tasks
    )
