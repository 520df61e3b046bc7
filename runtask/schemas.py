"""Request/response models — the contract between the platform and the receiver."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

PROBE_TOKEN = "test-token"

TaskStatus = Literal["passed", "failed"]


class RunTaskPayload(BaseModel):
    """Incoming run task request.

    Every field is optional: the platform's verification probe sends dummy
    data, and stages only fill the URLs they need. Unknown fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str | None = None
    stage: str | None = None
    organization_name: str | None = None
    workspace_name: str | None = None
    workspace_id: str | None = None
    run_id: str | None = None
    configuration_version_download_url: str | None = None
    plan_json_api_url: str | None = None
    task_result_callback_url: str | None = None

    @property
    def is_probe(self) -> bool:
        return self.access_token == PROBE_TOKEN


class TaskResultAttributes(BaseModel):
    status: TaskStatus
    message: str
    url: str


class TaskResultData(BaseModel):
    type: Literal["task-results"] = "task-results"
    attributes: TaskResultAttributes


class TaskResult(BaseModel):
    """Body of the PATCH sent to the task result callback URL."""

    data: TaskResultData

    @classmethod
    def build(cls, status: TaskStatus, message: str, url: str) -> "TaskResult":
        return cls(
            data=TaskResultData(
                attributes=TaskResultAttributes(status=status, message=message, url=url)
            )
        )


class DispatchResult(BaseModel):
    """Outcome of one background dispatch.

    Outcomes:
        skipped — verification probe, nothing to do
        ignored — stage this receiver does not handle
        passed  — fetch succeeded, passed result reported
        failed  — fetch failed or payload incomplete
    """

    stage: str | None = None
    run_id: str | None = None
    outcome: Literal["skipped", "ignored", "passed", "failed"]
    detail: str = ""
    callback_sent: bool = False
