"""
Bulk Job Controller
===================

Drives GraphQL bulk operations from submission to a result URL.

    Submitting -> Polling -> Completed | Failed | TimedOut
    TimedOut -> Cancelling -> Cancelled | CancelFailed

Shopify allows one bulk query per shop at a time and reports it through
``currentBulkOperation``, so polling is scoped to the credential rather
than to a job id. Only the poll step is retried. Submit and cancel are
issued exactly once.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from .exceptions import (
    BulkCancelError,
    BulkJobFailed,
    BulkJobTimeout,
    BulkSubmitError,
    RateLimited,
    TransportError,
)
from .executor import RequestExecutor
from .log import get_logger
from .models import BulkJob, BulkJobStatus, Credential
from .presets import PollPolicy

logger = get_logger(__name__)

SUBMIT_COST = 10
STATUS_COST = 1
CANCEL_COST = 1

STATUS_QUERY = """
{
  currentBulkOperation {
    id
    status
    errorCode
    createdAt
    completedAt
    objectCount
    fileSize
    url
    partialDataUrl
  }
}
"""


def submit_mutation(query: str) -> str:
    """Wrap ``query`` as a quoted literal inside bulkOperationRunQuery."""
    return f"""
mutation {{
  bulkOperationRunQuery(
    query: {json.dumps(query)}
  ) {{
    bulkOperation {{
      id
      status
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""


def cancel_mutation(job_id: str) -> str:
    return f"""
mutation {{
  bulkOperationCancel(id: {json.dumps(job_id)}) {{
    bulkOperation {{
      status
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""


def _user_error_messages(payload: Optional[Dict[str, Any]]) -> List[str]:
    errors = (payload or {}).get("userErrors") or []
    return [
        error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
        for error in errors
    ]


class BulkJobController:
    """
    Submit, poll and cancel bulk operations through a RequestExecutor.

    Args:
        executor: Executor every request is routed through
        sleep: Awaitable used between polls (default: asyncio.sleep)

    Example:
        ```python
        controller = BulkJobController(executor)
        url = await controller.run(
            credential,
            "{ products { edges { node { id title } } } }",
            PollPolicy(interval=5, max_attempts=120, auto_cancel=True),
        )
        ```
    """

    def __init__(self, executor: RequestExecutor, sleep=asyncio.sleep):
        self._executor = executor
        self._sleep = sleep

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    async def submit(self, credential: Credential, query: str) -> str:
        """
        Start a bulk query.

        Returns:
            The id of the new bulk operation

        Raises:
            BulkSubmitError: The server accepted the call but reported userErrors
        """
        data = await self._executor.graphql(credential, submit_mutation(query), estimated_cost=SUBMIT_COST)
        payload = data.get("bulkOperationRunQuery") or {}

        messages = _user_error_messages(payload)
        if messages:
            logger.warning("Bulk operation rejected", shop=credential.shop_domain, errors=messages)
            raise BulkSubmitError(messages)

        job_id = (payload.get("bulkOperation") or {}).get("id")
        if not job_id:
            raise BulkSubmitError(["Response did not include a bulk operation id"])

        logger.info("Bulk operation submitted", shop=credential.shop_domain, job_id=job_id)
        return job_id

    async def status(self, credential: Credential) -> Optional[BulkJob]:
        """Current bulk operation for the credential, or None if there is none."""
        data = await self._executor.graphql(credential, STATUS_QUERY, estimated_cost=STATUS_COST)
        payload = data.get("currentBulkOperation")
        return BulkJob.from_api(payload) if payload else None

    async def poll(
        self,
        credential: Credential,
        policy: PollPolicy,
        job_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Check the job every ``policy.interval`` seconds until it finishes.

        Sleeps only between attempts: a job seen as completed on the third
        attempt has been slept on exactly twice. When the budget runs out and
        ``policy.auto_cancel`` is set, one cancel is sent before the timeout
        is raised.

        Returns:
            The result URL, or None when the job completed with no rows

        Raises:
            BulkJobFailed: The job failed, expired or was cancelled
            BulkJobTimeout: ``max_attempts`` checks passed without a terminal
                status. Carries ``job_id``, or the last id seen when none was given.
        """
        try:
            return await self.wait(credential, policy, job_id)
        except BulkJobTimeout as exc:
            if policy.auto_cancel:
                await self.cancel_after_timeout(credential, exc.job_id)
            raise

    async def wait(
        self,
        credential: Credential,
        policy: PollPolicy,
        job_id: Optional[str] = None,
    ) -> Optional[str]:
        """Same as poll(), but never cancels on timeout."""
        last_seen_id = None
        for attempt in range(1, policy.max_attempts + 1):
            job = await self._poll_once(credential, attempt)
            if job is not None and job.id:
                last_seen_id = job.id

            if job is not None and job_id is not None and job.id != job_id:
                logger.warning(
                    "Current bulk operation is not the one being polled",
                    shop=credential.shop_domain,
                    expected=job_id,
                    current=job.id,
                )
            elif job is not None:
                if job.status is BulkJobStatus.COMPLETED:
                    logger.info(
                        "Bulk operation completed",
                        shop=credential.shop_domain,
                        job_id=job.id,
                        object_count=job.object_count,
                        attempts=attempt,
                    )
                    return job.url
                if job.status in (BulkJobStatus.FAILED, BulkJobStatus.CANCELLED):
                    raise BulkJobFailed(job.error_code, job.status, job.id)

            if attempt < policy.max_attempts:
                await self._sleep(policy.interval)

        timed_out_id = job_id or last_seen_id
        logger.warning(
            "Bulk operation polling timed out",
            shop=credential.shop_domain,
            job_id=timed_out_id,
            attempts=policy.max_attempts,
        )
        raise BulkJobTimeout(timed_out_id)

    async def _poll_once(self, credential: Credential, attempt: int) -> Optional[BulkJob]:
        try:
            return await self.status(credential)
        except (TransportError, RateLimited) as exc:
            logger.warning(
                "Bulk status check failed, will retry",
                shop=credential.shop_domain,
                attempt=attempt,
                error=repr(exc),
            )
            return None

    async def cancel(self, credential: Credential, job_id: str) -> BulkJobStatus:
        """
        Ask the server to cancel a job.

        Cancellation is itself asynchronous, so the reported status is
        usually CANCELLING. Cancelling a job that is already cancelling or
        cancelled returns that status instead of raising.

        Raises:
            BulkCancelError: The server reported userErrors for a job that
                is not being cancelled
        """
        data = await self._executor.graphql(credential, cancel_mutation(job_id), estimated_cost=CANCEL_COST)
        payload = data.get("bulkOperationCancel") or {}
        status = BulkJobStatus.from_api((payload.get("bulkOperation") or {}).get("status"))

        messages = _user_error_messages(payload)
        if messages and status not in (BulkJobStatus.CANCELLING, BulkJobStatus.CANCELLED):
            raise BulkCancelError(messages)

        logger.info("Bulk operation cancel requested", shop=credential.shop_domain, job_id=job_id, status=status.value)
        return status

    async def cancel_after_timeout(self, credential: Credential, job_id: Optional[str]) -> Optional[BulkJobStatus]:
        """
        Best-effort cleanup of a job whose poll budget ran out.

        Failures are logged and never raised: the caller is already
        reporting the timeout.
        """
        if job_id is None:
            return None
        try:
            return await self.cancel(credential, job_id)
        except Exception as exc:
            logger.warning(
                "Could not cancel timed out bulk operation",
                shop=credential.shop_domain,
                job_id=job_id,
                error=repr(exc),
            )
            return None

    async def run(self, credential: Credential, query: str, policy: PollPolicy) -> Optional[str]:
        """
        Submit a query and poll it to completion.

        Raises:
            BulkSubmitError, BulkJobFailed: See submit() and poll()
            BulkJobTimeout: Raised after the optional auto-cancel
        """
        job_id = await self.submit(credential, query)
        return await self.poll(credential, policy, job_id)
