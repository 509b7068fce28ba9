"""
Jenkins MCP Bridge

A Model Context Protocol server that exposes the Jenkins REST API as a set of
discrete tools: trigger, schedule, stop and describe builds, inspect jobs,
read artifacts, manage the queue, and check instance health.

Every tool returns a JSON envelope with a boolean "success" flag and the tool
name under "operation".  Failed calls carry the same JSON but are flagged as
errors to the MCP client.

Transport: stdio by default (MCP_TRANSPORT=stdio).  Set MCP_TRANSPORT=http to
           serve Streamable HTTP on MCP_HOST:MCP_PORT instead.
Logs:      All application logs go to stderr to avoid corrupting the JSON-RPC stream.
"""

import json
import logging
import os
import sys
from functools import lru_cache

from dotenv import load_dotenv
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from jenkins_mcp import (
    artifact_management,
    build_management,
    job_info,
    queue_management,
    system_info,
)
from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.config import load_config

load_dotenv()

# Route all library and application logs to stderr, never stdout.
logging.basicConfig(
    stream=sys.stderr,
    level=os.getenv("LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("jenkins-mcp")

mcp = FastMCP(
    "Jenkins MCP Bridge",
    instructions=(
        "You control a Jenkins CI server. "
        "Use get_jobs to discover jobs and get_job / get_build to inspect them. "
        "trigger_build queues a build and returns a queue_id; poll it with get_queue_item "
        "until 'transitioned' is true to learn the build number. "
        "Build parameter values that name a file in the working directory are uploaded as file parameters. "
        "Use schedule_build to start a build later, stop_build to abort a running one, "
        "and update_build to set a build description. "
        "list_build_artifacts and read_build_artifact give access to build outputs. "
        "get_queue_info, cancel_queued_build, who_am_i and get_status cover the queue and server health. "
        "Every result is JSON; check the 'success' field and read 'message' on failure."
    ),
)


@lru_cache(maxsize=1)
def get_client() -> JenkinsClient:
    """The single client shared by every tool call for the life of the process."""
    config = load_config()
    logger.info("Connecting to Jenkins at %s", config.base_url)
    return JenkinsClient(config)


def _respond(envelope: dict) -> str:
    """Serialize an envelope; failures are raised so the call is marked isError."""
    text = json.dumps(envelope, indent=2, default=str)
    if not envelope.get("success"):
        raise ToolError(text)
    return text


# ---------------------------------------------------------------------------
# Build management
# ---------------------------------------------------------------------------


@mcp.tool
def trigger_build(job_full_name: str, parameters: dict | None = None) -> str:
    """Trigger a Jenkins job build with regular and file parameters.

    Args:
        job_full_name: Full job path, folders separated by '/' (e.g. "team/app/main").
        parameters: Build parameters.  A string value naming an existing file in
            the working directory is uploaded as a file parameter.
    """
    return _respond(build_management.trigger_build(get_client(), job_full_name, parameters))


@mcp.tool
def schedule_build(job_full_name: str, schedule_time: str, parameters: dict | None = None) -> str:
    """Schedule a Jenkins build to start at a specific time.

    Args:
        job_full_name: Full job path.
        schedule_time: When to run: '22:15', '10:30 PM', 'in 5 minutes' or '2024-12-20 15:30'.
        parameters: Build parameters, as for trigger_build.
    """
    return _respond(
        build_management.schedule_build(get_client(), job_full_name, schedule_time, parameters)
    )


@mcp.tool
def stop_build(job_full_name: str, build_number: int | None = None) -> str:
    """Stop a running build (graceful stop, then kill).

    Args:
        job_full_name: Full job path.
        build_number: Build to stop (defaults to the last build).
    """
    return _respond(build_management.stop_build(get_client(), job_full_name, build_number))


@mcp.tool
def update_build(
    job_full_name: str,
    build_number: int | None = None,
    display_name: str | None = None,
    description: str | None = None,
) -> str:
    """Update a build's description (display names cannot be set over REST).

    Args:
        job_full_name: Full job path.
        build_number: Build to update (defaults to the last build).
        display_name: New display name.
        description: New description.
    """
    return _respond(build_management.update_build(
        get_client(), job_full_name, build_number, display_name, description,
    ))


# ---------------------------------------------------------------------------
# Job information
# ---------------------------------------------------------------------------


@mcp.tool
def get_job(job_full_name: str) -> str:
    """Get information about a Jenkins job.

    Args:
        job_full_name: Full job path.
    """
    return _respond(job_info.get_job(get_client(), job_full_name))


@mcp.tool
def get_build(job_full_name: str, build_number: int | None = None) -> str:
    """Get information about a specific build or the last build.

    Args:
        job_full_name: Full job path.
        build_number: Build number (defaults to the last build).
    """
    return _respond(job_info.get_build(get_client(), job_full_name, build_number))


@mcp.tool
def get_jobs(parent_full_name: str = "", skip: int = 0, limit: int = 10) -> str:
    """List jobs sorted by name, one page at a time.

    Args:
        parent_full_name: Folder to list (defaults to the root).
        skip: Number of jobs to skip.
        limit: Page size (max 10).
    """
    return _respond(job_info.get_jobs(get_client(), parent_full_name, skip, limit))


# ---------------------------------------------------------------------------
# System information
# ---------------------------------------------------------------------------


@mcp.tool
def who_am_i() -> str:
    """Show the user Jenkins sees for the configured credentials."""
    return _respond(system_info.who_am_i(get_client()))


@mcp.tool
def get_status() -> str:
    """Jenkins health: queue length, executors, and node status."""
    return _respond(system_info.get_status(get_client()))


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


@mcp.tool
def list_build_artifacts(job_full_name: str, build_number: int | None = None) -> str:
    """List the artifacts of a build.

    Args:
        job_full_name: Full job path.
        build_number: Build number (defaults to the last build).
    """
    return _respond(artifact_management.list_build_artifacts(get_client(), job_full_name, build_number))


@mcp.tool
def read_build_artifact(
    job_full_name: str,
    artifact_path: str,
    build_number: int | None = None,
    format: str = "text",
) -> str:
    """Read the content of a build artifact.

    Args:
        job_full_name: Full job path.
        artifact_path: Artifact path relative to the build (e.g. "reports/test.xml").
        build_number: Build number (defaults to the last build).
        format: "text" (JSON is parsed) or "base64" for binary files.
    """
    return _respond(artifact_management.read_build_artifact(
        get_client(), job_full_name, artifact_path, build_number, format,
    ))


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


@mcp.tool
def get_queue_info(job_full_name: str | None = None) -> str:
    """Show queued builds, for one job or the whole server.

    Args:
        job_full_name: Only show items for this job (optional).
    """
    return _respond(queue_management.get_queue_info(get_client(), job_full_name))


@mcp.tool
def get_queue_item(queue_id: int) -> str:
    """Check a queue item and whether it has started a build.

    Args:
        queue_id: Queue item id (from trigger_build).
    """
    return _respond(queue_management.get_queue_item(get_client(), queue_id))


@mcp.tool
def cancel_queued_build(job_full_name: str, queue_id: int | None = None) -> str:
    """Cancel a queued build that has not started yet.

    Args:
        job_full_name: Full job path.
        queue_id: Queue item to cancel; without it every queued item of the job is cancelled.
    """
    return _respond(queue_management.cancel_queued_build(get_client(), job_full_name, queue_id))


def main() -> None:
    transport = os.getenv("MCP_TRANSPORT", "stdio")
    host = os.getenv("MCP_HOST", "0.0.0.0")
    port = int(os.getenv("MCP_PORT", "8000"))

    try:
        client = get_client()
    except EnvironmentError as exc:
        print(f"Failed to start Jenkins MCP Bridge: {exc}", file=sys.stderr)
        sys.exit(1)

    if transport == "stdio":
        logger.info("Jenkins MCP Bridge running on stdio for %s", client.base_url)
        mcp.run(transport="stdio", show_banner=False)
    else:
        print(
            f"Jenkins MCP Bridge starting for {client.base_url}\n"
            f"  Local:    http://127.0.0.1:{port}/mcp",
            file=sys.stderr,
        )
        mcp.run(transport=transport, host=host, port=port, show_banner=False)


if __name__ == "__main__":
    main()
