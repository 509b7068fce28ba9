"""
Build control tools: trigger, schedule, stop, and update builds.

Every function takes the shared JenkinsClient plus the tool arguments and
returns an envelope; nothing raises past the function boundary.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import ExitStack
from datetime import datetime

from jenkins_mcp.build_params import FilePath, LiteralValue, resolve_parameters
from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.envelope import (
    classify_error,
    failure,
    failure_from_response,
    is_action_accepted,
    is_success_status,
    success,
)
from jenkins_mcp.errors import InputValidationError
from jenkins_mcp.helpers import (
    build_ref,
    extract_queue_id,
    get_mime_type,
    job_path,
    parse_schedule_time,
)

logger = logging.getLogger(__name__)


def _require_job(job_full_name) -> str:
    if not isinstance(job_full_name, str) or not job_full_name.strip():
        raise InputValidationError("job_full_name is required")
    return job_full_name.strip().strip("/")


def _submit_build(
    client: JenkinsClient,
    job_full_name: str,
    parameters: dict | None,
    delay_seconds: int | None = None,
):
    """POST the trigger request and return the raw response.

    No parameters: POST /build.  Only literal values: form-encoded
    /buildWithParameters.  Any file value: multipart /build carrying the
    files as file0, file1, ... plus a 'json' field describing every parameter.
    """
    resolved = resolve_parameters(parameters, client.config.allow_absolute_file_paths)
    base = job_path(job_full_name)
    query = {"delay": f"{delay_seconds}sec"} if delay_seconds is not None else None

    if not resolved:
        return client.post(f"{base}/build", params=query)

    if all(isinstance(p, LiteralValue) for p in resolved):
        form = {p.name: p.value for p in resolved}
        return client.post(f"{base}/buildWithParameters", data=form, params=query)

    with ExitStack() as stack:
        descriptors = []
        files = {}
        for param in resolved:
            if isinstance(param, FilePath):
                field = f"file{len(files)}"
                handle = stack.enter_context(open(param.path, "rb"))
                files[field] = (os.path.basename(param.path), handle, get_mime_type(param.path))
                descriptors.append({"name": param.name, "file": field})
            else:
                descriptors.append({"name": param.name, "value": param.value})
        logger.debug("Uploading %d file parameter(s) to %s", len(files), job_full_name)
        data = {"json": json.dumps({"parameter": descriptors})}
        return client.post(f"{base}/build", data=data, files=files, params=query)


def _interpret_trigger(operation: str, job_full_name: str, response, extra: dict) -> dict:
    location = response.headers.get("Location")
    if is_success_status(response.status_code):
        return success(operation, {
            "message": f"Build triggered successfully for {job_full_name}",
            "queue_url": location,
            "queue_id": extract_queue_id(location),
            "status_code": response.status_code,
            **extra,
        })
    if 300 <= response.status_code < 400:
        logger.warning(
            "%s for %s redirected (%d) to %s", operation, job_full_name,
            response.status_code, location,
        )
        return failure_from_response(
            operation, response,
            f"Jenkins redirected the request ({response.status_code}); "
            "this usually means the login page, so check credentials",
            {"location": location},
        )
    return failure_from_response(
        operation, response, f"Build trigger returned status {response.status_code}",
    )


def trigger_build(client: JenkinsClient, job_full_name: str, parameters: dict | None = None) -> dict:
    """Queue a build, uploading any parameter value that names a local file."""
    operation = "trigger_build"
    try:
        job_full_name = _require_job(job_full_name)
        response = _submit_build(client, job_full_name, parameters)
        return _interpret_trigger(operation, job_full_name, response, {})
    except Exception as exc:
        return classify_error(exc, operation)


def schedule_build(
    client: JenkinsClient,
    job_full_name: str,
    schedule_time: str,
    parameters: dict | None = None,
    now: datetime | None = None,
) -> dict:
    """Queue a build with a quiet period so it starts at ``schedule_time``."""
    operation = "schedule_build"
    try:
        job_full_name = _require_job(job_full_name)
        now = now or datetime.now().astimezone()
        scheduled = parse_schedule_time(schedule_time, now)
        delay = int((scheduled - now).total_seconds())
        response = _submit_build(client, job_full_name, parameters, delay_seconds=delay)
        result = _interpret_trigger(operation, job_full_name, response, {
            "scheduled_time": scheduled.isoformat(),
            "delay_seconds": delay,
        })
        if result["success"]:
            result["message"] = f"Build scheduled successfully for {job_full_name}"
        return result
    except Exception as exc:
        return classify_error(exc, operation)


def stop_build(client: JenkinsClient, job_full_name: str, build_number: int | None = None) -> dict:
    """Abort a running build: graceful stop first, hard kill if that fails."""
    operation = "stop_build"
    try:
        job_full_name = _require_job(job_full_name)
        base = job_path(job_full_name)
        ref = build_ref(build_number)
        info = client.get(f"{base}/{ref}/api/json?tree=number,building,result,url")
        if info.status_code != 200:
            return failure_from_response(
                operation, info, f"Build not found: {job_full_name}#{ref}",
            )

        build = info.json()
        number = build.get("number")
        if not build.get("building"):
            return failure(operation, f"Build #{number} is not currently running", {
                "build_number": number,
                "build_result": build.get("result"),
                "build_url": build.get("url"),
            })

        stop = client.post(f"{base}/{number}/stop")
        if is_action_accepted(stop):
            action = "stop"
        else:
            logger.info("Stop of %s #%s returned %d; trying kill", job_full_name, number, stop.status_code)
            kill = client.post(f"{base}/{number}/kill")
            if not is_action_accepted(kill):
                return failure_from_response(operation, stop, f"Failed to stop build #{number}", {
                    "kill_status_code": kill.status_code,
                })
            action = "kill"

        return success(operation, {
            "message": f"Build #{number} {action} request sent successfully",
            "build_number": number,
            "build_url": build.get("url"),
            "action": action,
        })
    except Exception as exc:
        return classify_error(exc, operation)


def update_build(
    client: JenkinsClient,
    job_full_name: str,
    build_number: int | None = None,
    display_name: str | None = None,
    description: str | None = None,
) -> dict:
    """Set a build's description.  Display names cannot be changed over REST."""
    operation = "update_build"
    try:
        job_full_name = _require_job(job_full_name)
        if display_name is None and description is None:
            raise InputValidationError("Provide display_name and/or description to update")

        base = job_path(job_full_name)
        ref = build_ref(build_number)
        info = client.get(f"{base}/{ref}/api/json?tree=number,url,description")
        if info.status_code != 200:
            return failure_from_response(
                operation, info, f"Build not found: {job_full_name}#{ref}",
            )
        build = info.json()
        number = build.get("number")

        updates = []
        if description is not None:
            response = client.post(
                f"{base}/{number}/submitDescription", data={"description": description},
            )
            if is_action_accepted(response):
                updates.append({"field": "description", "success": True, "new_value": description})
            else:
                updates.append({
                    "field": "description",
                    "success": False,
                    "error": f"Failed with status {response.status_code}",
                    "status_code": response.status_code,
                })

        if display_name is not None:
            updates.append({
                "field": "display_name",
                "success": False,
                "error": "Not supported via REST API",
                "workaround": "Use the Jenkins Script Console with a Groovy script",
            })

        result = {"build_number": number, "build_url": build.get("url"), "updates": updates}
        if any(u["success"] for u in updates):
            return success(operation, result)
        return failure(operation, f"No fields of build #{number} were updated", result)
    except Exception as exc:
        return classify_error(exc, operation)
