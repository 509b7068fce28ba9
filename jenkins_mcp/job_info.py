"""Job and build lookup tools."""

from __future__ import annotations

from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.envelope import classify_error, failure_from_response, invalid_input, success
from jenkins_mcp.helpers import build_ref, job_path

MAX_PAGE_SIZE = 10

_JOBS_TREE = "jobs[name,url,description,buildable,color,_class]"


def _missing_job(operation: str) -> dict:
    return invalid_input(operation, "job_full_name is required")


def get_job(client: JenkinsClient, job_full_name: str) -> dict:
    operation = "get_job"
    if not job_full_name:
        return _missing_job(operation)
    try:
        response = client.get(f"{job_path(job_full_name)}/api/json")
        if response.status_code == 200:
            return success(operation, {"job": response.json()})
        return failure_from_response(operation, response, f"Job not found: {job_full_name}")
    except Exception as exc:
        return classify_error(exc, operation)


def get_build(client: JenkinsClient, job_full_name: str, build_number: int | None = None) -> dict:
    """Fetch a build; without a number, the job's most recent build."""
    operation = "get_build"
    if not job_full_name:
        return _missing_job(operation)
    ref = build_ref(build_number)
    try:
        response = client.get(f"{job_path(job_full_name)}/{ref}/api/json")
        if response.status_code == 200:
            return success(operation, {"build": response.json()})
        return failure_from_response(operation, response, f"Build not found: {job_full_name}#{ref}")
    except Exception as exc:
        return classify_error(exc, operation)


def _clamp(value, default: int, low: int, high: int | None = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    number = max(low, number)
    return min(high, number) if high is not None else number


def get_jobs(
    client: JenkinsClient,
    parent_full_name: str = "",
    skip: int = 0,
    limit: int = MAX_PAGE_SIZE,
) -> dict:
    """List jobs in a folder (or the root), sorted by name, one page at a time.

    ``limit`` is clamped to 1..MAX_PAGE_SIZE and ``skip`` to >= 0; ``total``
    is the number of jobs before windowing.
    """
    operation = "get_jobs"
    skip = _clamp(skip, 0, 0)
    limit = _clamp(limit, MAX_PAGE_SIZE, 1, MAX_PAGE_SIZE)
    base = job_path(parent_full_name) if parent_full_name else ""
    try:
        response = client.get(f"{base}/api/json?tree={_JOBS_TREE}")
        if response.status_code != 200:
            return failure_from_response(operation, response, "Failed to get jobs")
        jobs = response.json().get("jobs") or []
        ordered = sorted(jobs, key=lambda j: j.get("name") or "")
        return success(operation, {
            "jobs": ordered[skip:skip + limit],
            "total": len(jobs),
            "skip": skip,
            "limit": limit,
        })
    except Exception as exc:
        return classify_error(exc, operation)
