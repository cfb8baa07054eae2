"""
Bulk Query Flow
===============

PocketFlow graph for the full bulk export lifecycle:

    SubmitBulkJobNode >> PollBulkJobNode
    PollBulkJobNode - "completed" >> FetchResultsNode
    PollBulkJobNode - "timeout"   >> CancelBulkJobNode

Nodes communicate through the shared store:

    credential, query, policy   inputs
    job_id                      set by SubmitBulkJobNode
    url                         set by PollBulkJobNode on completion
    records                     set by FetchResultsNode
    cancel_status               set by CancelBulkJobNode

Classes:
    - BulkQueryFlow: Ready-wired AsyncFlow returning the decoded records
    - SubmitBulkJobNode, PollBulkJobNode, CancelBulkJobNode, FetchResultsNode
"""

from typing import Any, Dict, List, Optional

from pocketflow import AsyncFlow, AsyncNode

from .bulk import BulkJobController
from .exceptions import BulkJobTimeout
from .presets import PollPolicy
from .results import ResultStreamReader


class SubmitBulkJobNode(AsyncNode):
    """Submit ``shared["query"]`` and store the job id."""

    def __init__(self, controller: BulkJobController):
        super().__init__()
        self.controller = controller

    async def prep_async(self, shared):
        return shared["credential"], shared["query"]

    async def exec_async(self, prep_res):
        credential, query = prep_res
        return await self.controller.submit(credential, query)

    async def post_async(self, shared, prep_res, exec_res):
        shared["job_id"] = exec_res
        return "default"


class PollBulkJobNode(AsyncNode):
    """
    Poll until the job finishes.

    Routes to "completed" with the result url, or to "timeout" when the poll
    budget runs out. Failed jobs raise BulkJobFailed out of the flow.
    """

    def __init__(self, controller: BulkJobController):
        super().__init__()
        self.controller = controller

    async def prep_async(self, shared):
        return shared["credential"], shared["policy"], shared.get("job_id")

    async def exec_async(self, prep_res):
        credential, policy, job_id = prep_res
        try:
            return "completed", await self.controller.wait(credential, policy, job_id)
        except BulkJobTimeout as exc:
            return "timeout", exc

    async def post_async(self, shared, prep_res, exec_res):
        action, value = exec_res
        if action == "completed":
            shared["url"] = value
        else:
            shared["timeout"] = value
        return action


class CancelBulkJobNode(AsyncNode):
    """Cancel a timed out job when the policy asks for it, then re-raise the timeout."""

    def __init__(self, controller: BulkJobController):
        super().__init__()
        self.controller = controller

    async def prep_async(self, shared):
        return shared["credential"], shared["policy"], shared.get("job_id") or shared["timeout"].job_id

    async def exec_async(self, prep_res):
        credential, policy, job_id = prep_res
        if not policy.auto_cancel:
            return None
        return await self.controller.cancel_after_timeout(credential, job_id)

    async def post_async(self, shared, prep_res, exec_res):
        shared["cancel_status"] = exec_res
        raise shared["timeout"]


class FetchResultsNode(AsyncNode):
    """Download and decode the JSONL result of a completed job."""

    def __init__(self, reader: ResultStreamReader):
        super().__init__()
        self.reader = reader

    async def prep_async(self, shared):
        return shared.get("url")

    async def exec_async(self, url):
        return await self.reader.read(url)

    async def post_async(self, shared, prep_res, exec_res):
        shared["records"] = exec_res
        return "default"


class BulkQueryFlow(AsyncFlow):
    """
    Submit a bulk query, wait for it, and return its records.

    Example:
        ```python
        flow = BulkQueryFlow(controller, reader)
        shared = {
            "credential": credential,
            "query": "{ orders { edges { node { id } } } }",
            "policy": Presets.poll_policy("standard"),
        }
        records = await flow.run_async(shared)
        print(shared["job_id"], len(records))
        ```

    Note:
        The flow raises whatever the nodes raise: BulkSubmitError,
        BulkJobFailed, BulkJobTimeout (after the optional cancel), ParseError
        and the executor's transport/HTTP errors.
    """

    def __init__(self, controller: BulkJobController, reader: ResultStreamReader):
        submit = SubmitBulkJobNode(controller)
        poll = PollBulkJobNode(controller)
        cancel = CancelBulkJobNode(controller)
        fetch = FetchResultsNode(reader)

        submit >> poll
        poll - "completed" >> fetch
        poll - "timeout" >> cancel

        super().__init__(start=submit)

    async def post_async(self, shared, prep_res, exec_res) -> List[Any]:
        return shared.get("records", [])

    @staticmethod
    def shared_store(credential, query: str, policy: Optional[PollPolicy] = None) -> Dict[str, Any]:
        """Build the initial shared store for a run."""
        return {"credential": credential, "query": query, "policy": policy or PollPolicy()}
