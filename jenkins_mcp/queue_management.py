"""
Build queue tools: inspect the queue, follow a queue item, cancel items.

A queue item is a pending build request.  Jenkins keeps it under
/queue/item/<id> until an executor picks it up, after which the item's
``executable`` points at the build that was started.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.envelope import (
    classify_error,
    failure,
    failure_from_response,
    invalid_input,
    is_action_accepted,
    success,
)
from jenkins_mcp.helpers import encode_job_path

logger = logging.getLogger(__name__)

_MAX_QUEUE_ITEMS = 50
_QUEUE_PATH = "/queue/api/json"


def _iso_ms(ms) -> str | None:
    if not ms:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _queued_for(ms, now_ms: float) -> str | None:
    if not ms:
        return None
    return f"{int(max(0, now_ms - ms) // 1000)} seconds"


def _belongs_to_job(item: dict, job_full_name: str, base_url: str) -> bool:
    """Match a queue item to a job by task URL, falling back to task name."""
    task = item.get("task") or {}
    url = task.get("url")
    if url:
        if url.startswith(base_url):
            url = url[len(base_url):]
        item_path = url.strip("/")
        return item_path == f"job/{encode_job_path(job_full_name)}"
    name = task.get("name")
    if name:
        return name in (job_full_name, job_full_name.split("/")[-1])
    return False


def _summarize(item: dict, now_ms: float) -> dict:
    task = item.get("task") or {}
    since = item.get("inQueueSince")
    return {
        "id": item.get("id"),
        "task_name": task.get("name") or "Unknown",
        "task_url": task.get("url"),
        "why": item.get("why") or "Waiting",
        "stuck": bool(item.get("stuck")),
        "blocked": bool(item.get("blocked")),
        "buildable": item.get("buildable") is not False,
        "in_queue_since": _iso_ms(since),
        "queued_for": _queued_for(since, now_ms),
        "params": item.get("params"),
    }


def _fetch_queue(client: JenkinsClient):
    return client.get(_QUEUE_PATH)


def get_queue_info(client: JenkinsClient, job_full_name: str | None = None) -> dict:
    """List queued items, optionally only those belonging to one job."""
    operation = "get_queue_info"
    try:
        response = _fetch_queue(client)
        if response.status_code != 200:
            return failure_from_response(operation, response, "Failed to fetch queue information")

        all_items = response.json().get("items") or []
        now_ms = datetime.now(tz=timezone.utc).timestamp() * 1000

        if job_full_name:
            matched = [i for i in all_items if _belongs_to_job(i, job_full_name, client.base_url)]
            return success(operation, {
                "job_name": job_full_name,
                "queue_items": [_summarize(i, now_ms) for i in matched[:_MAX_QUEUE_ITEMS]],
                "total_in_queue": len(matched),
            })

        if len(all_items) > _MAX_QUEUE_ITEMS:
            logger.debug("Queue has %d items; listing truncated to %d", len(all_items), _MAX_QUEUE_ITEMS)
        return success(operation, {
            "queue_items": [_summarize(i, now_ms) for i in all_items[:_MAX_QUEUE_ITEMS]],
            "total_in_queue": len(all_items),
            "summary": {
                "total": len(all_items),
                "stuck": sum(1 for i in all_items if i.get("stuck")),
                "blocked": sum(1 for i in all_items if i.get("blocked")),
                "buildable": sum(1 for i in all_items if i.get("buildable") is not False),
            },
        })
    except Exception as exc:
        return classify_error(exc, operation)


def get_queue_item(client: JenkinsClient, queue_id) -> dict:
    """Poll one queue item and report whether it has turned into a build."""
    operation = "get_queue_item"
    if queue_id is None or str(queue_id).strip() == "":
        return invalid_input(operation, "queue_id is required")
    try:
        response = client.get(f"/queue/item/{queue_id}/api/json")
        if response.status_code != 200:
            return failure_from_response(operation, response, f"Queue item not found: {queue_id}")

        data = response.json()
        task = data.get("task") or {}
        executable = data.get("executable")
        return success(operation, {
            "queue_id": queue_id,
            "blocked": bool(data.get("blocked")),
            "buildable": data.get("buildable") is not False,
            "stuck": bool(data.get("stuck")),
            "cancelled": bool(data.get("cancelled")),
            "why": data.get("why") or "Waiting",
            "params": data.get("params"),
            "task_name": task.get("name"),
            "task_url": task.get("url"),
            "executable": (
                {"number": executable.get("number"), "url": executable.get("url")}
                if executable else None
            ),
            "transitioned": bool(executable),
        })
    except Exception as exc:
        return classify_error(exc, operation)


def _cancel(client: JenkinsClient, queue_id):
    return client.post("/queue/cancelItem", data={"id": str(queue_id)})


def cancel_queued_build(client: JenkinsClient, job_full_name: str, queue_id=None) -> dict:
    """Cancel one queue item, or every item queued for the job when no id is given."""
    operation = "cancel_queued_build"
    if not job_full_name:
        return invalid_input(operation, "job_full_name is required")
    try:
        if queue_id:
            response = _cancel(client, queue_id)
            if is_action_accepted(response):
                return success(operation, {
                    "message": f"Queue item #{queue_id} cancelled successfully",
                    "queue_id": queue_id,
                    "method": "direct",
                })
            return failure_from_response(operation, response, f"Failed to cancel queue item #{queue_id}")

        queue = _fetch_queue(client)
        if queue.status_code != 200:
            return failure_from_response(operation, queue, "Failed to fetch queue information")

        all_items = queue.json().get("items") or []
        matched = [i for i in all_items if _belongs_to_job(i, job_full_name, client.base_url)]
        if not matched:
            return failure(operation, f"No queued builds found for job: {job_full_name}", {
                "total_queue_items": len(all_items),
            })

        results = []
        for item in matched:
            try:
                response = _cancel(client, item.get("id"))
                results.append({
                    "queue_id": item.get("id"),
                    "success": is_action_accepted(response),
                    "status_code": response.status_code,
                    "why": item.get("why") or "No reason provided",
                })
            except Exception as exc:
                logger.warning("Cancelling queue item %s failed: %s", item.get("id"), exc)
                results.append({"queue_id": item.get("id"), "success": False, "error": str(exc)})

        cancelled = sum(1 for r in results if r["success"])
        detail = {
            "cancelled_items": results,
            "total_cancelled": cancelled,
            "total_found": len(matched),
        }
        if cancelled == len(results):
            return success(operation, {
                "message": f"Successfully cancelled {cancelled} queued build(s) for {job_full_name}",
                **detail,
            })
        return failure(
            operation, f"Cancelled {cancelled} out of {len(results)} queued build(s)", detail,
        )
    except Exception as exc:
        return classify_error(exc, operation)
