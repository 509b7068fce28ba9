"""Server-level tools: the authenticated identity and overall instance health."""

from __future__ import annotations

from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.envelope import classify_error, failure_from_response, success

_COMPUTER_TREE = (
    "busyExecutors,totalExecutors,"
    "computer[displayName,offline,offlineCauseReason,idle,numExecutors,"
    "assignedLabels[name],monitorData[hudson.node_monitors.DiskSpaceMonitor]]"
)


def who_am_i(client: JenkinsClient) -> dict:
    operation = "who_am_i"
    try:
        response = client.get("/whoAmI/api/json")
        if response.status_code == 200:
            return success(operation, {"user": response.json()})
        return failure_from_response(operation, response, "Failed to get user info")
    except Exception as exc:
        return classify_error(exc, operation)


def _node(computer: dict) -> dict:
    disk_gb: float | None = None
    disk_monitor = (computer.get("monitorData") or {}).get(
        "hudson.node_monitors.DiskSpaceMonitor"
    )
    if isinstance(disk_monitor, dict):
        size_bytes = disk_monitor.get("size")
        if size_bytes is not None:
            disk_gb = round(size_bytes / (1024 ** 3), 2)

    return {
        "name": computer.get("displayName", ""),
        "online": not computer.get("offline", True),
        "offline_reason": computer.get("offlineCauseReason") or None,
        "labels": [
            lbl.get("name", "")
            for lbl in (computer.get("assignedLabels") or [])
            if lbl.get("name")
        ],
        "executors": computer.get("numExecutors", 0),
        "idle": computer.get("idle", False),
        "disk_gb": disk_gb,
    }


def get_status(client: JenkinsClient) -> dict:
    """Queue length, executor usage and per-node state in one call.

    Reads /overallLoad, /queue and /computer in turn; the first non-200
    answer becomes the failure.
    """
    operation = "get_status"
    try:
        load = client.get("/overallLoad/api/json")
        if load.status_code != 200:
            return failure_from_response(operation, load, "Failed to read overall load")
        queue = client.get("/queue/api/json?tree=items[id]")
        if queue.status_code != 200:
            return failure_from_response(operation, queue, "Failed to read the build queue")
        computers = client.get(f"/computer/api/json?tree={_COMPUTER_TREE}")
        if computers.status_code != 200:
            return failure_from_response(operation, computers, "Failed to read nodes")

        computer_data = computers.json()
        nodes = [_node(c) for c in computer_data.get("computer") or []]
        total = computer_data.get("totalExecutors")
        if total is None:
            total = sum(n["executors"] or 0 for n in nodes if n["online"])
        busy = computer_data.get("busyExecutors") or 0

        return success(operation, {
            "status": {
                "queue_length": len(queue.json().get("items") or []),
                "total_executors": total,
                "busy_executors": busy,
                "available_executors": max(0, total - busy),
                "nodes_online": sum(1 for n in nodes if n["online"]),
                "nodes_offline": sum(1 for n in nodes if not n["online"]),
                "nodes": nodes,
                "overall_load": load.json(),
            },
        })
    except Exception as exc:
        return classify_error(exc, operation)
