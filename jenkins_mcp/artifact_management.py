"""
Artifact tools: list a build's artifacts and read one of them.

Artifact content lands in the caller's context window, so downloads are
streamed and capped at _MAX_ARTIFACT_BYTES.
"""

from __future__ import annotations

import base64
import codecs
import json
import os

from jenkins_mcp.client import JenkinsClient
from jenkins_mcp.envelope import classify_error, failure_from_response, invalid_input, success
from jenkins_mcp.helpers import build_ref, encode_artifact_path, get_mime_type, job_path

_MAX_ARTIFACT_BYTES = 1024 * 1024   # 1 MB
_FORMATS = ("text", "base64")

_ARTIFACTS_TREE = "artifacts[fileName,relativePath,displayPath],number,url,result,timestamp"


def list_build_artifacts(client: JenkinsClient, job_full_name: str, build_number: int | None = None) -> dict:
    operation = "list_build_artifacts"
    if not job_full_name:
        return invalid_input(operation, "job_full_name is required")
    base = job_path(job_full_name)
    ref = build_ref(build_number)
    try:
        response = client.get(f"{base}/{ref}/api/json?tree={_ARTIFACTS_TREE}")
        if response.status_code != 200:
            return failure_from_response(operation, response, f"Build not found: {job_full_name}#{ref}")

        build = response.json()
        number = build.get("number")
        artifacts = []
        for a in build.get("artifacts") or []:
            relative = a.get("relativePath", "")
            artifacts.append({
                "file_name": a.get("fileName", ""),
                "relative_path": relative,
                "display_path": a.get("displayPath") or relative,
                "download_url": client.url(f"{base}/{number}/artifact/{encode_artifact_path(relative)}"),
            })
        return success(operation, {
            "build_number": number,
            "build_url": build.get("url"),
            "build_result": build.get("result"),
            "timestamp": build.get("timestamp"),
            "artifacts": artifacts,
            "total_artifacts": len(artifacts),
        })
    except Exception as exc:
        return classify_error(exc, operation)


def _download(response, max_bytes: int) -> tuple[bytes, bool]:
    chunks: list[bytes] = []
    total = 0
    truncated = False
    for chunk in response.iter_content(chunk_size=8192):
        chunks.append(chunk)
        total += len(chunk)
        if total >= max_bytes:
            truncated = True
            break
    response.close()
    return b"".join(chunks)[:max_bytes], truncated


def read_build_artifact(
    client: JenkinsClient,
    job_full_name: str,
    artifact_path: str,
    build_number: int | None = None,
    format: str = "text",
) -> dict:
    """Read an artifact as text (JSON is parsed) or as base64.

    Without a build number, the last build is resolved first so the result
    names the concrete build it came from.
    """
    operation = "read_build_artifact"
    if not job_full_name or not artifact_path:
        return invalid_input(operation, "job_full_name and artifact_path are required")
    if format not in _FORMATS:
        return invalid_input(operation, f"format must be one of {', '.join(_FORMATS)}")

    base = job_path(job_full_name)
    try:
        number = build_number
        if not number:
            info = client.get(f"{base}/lastBuild/api/json?tree=number")
            if info.status_code != 200:
                return failure_from_response(
                    operation, info, f"Could not determine the last build of {job_full_name}",
                )
            number = info.json().get("number")

        response = client.get(
            f"{base}/{number}/artifact/{encode_artifact_path(artifact_path)}",
            stream=True,
        )
        if response.status_code != 200:
            response.close()
            return failure_from_response(
                operation, response, f"Artifact not found: {artifact_path} in build {number}",
            )

        size = response.headers.get("Content-Length")
        raw, truncated = _download(response, _MAX_ARTIFACT_BYTES)

        if format == "base64":
            content = base64.b64encode(raw).decode("ascii")
        else:
            try:
                # A truncated download may end inside a multi-byte character.
                content = codecs.getincrementaldecoder("utf-8")().decode(raw, final=not truncated)
            except UnicodeDecodeError:
                return invalid_input(
                    operation,
                    f"Artifact {artifact_path} is not UTF-8 text; read it with format='base64'",
                )
            ext = os.path.splitext(artifact_path)[1].lower()
            if not truncated and (ext == ".json" or content.lstrip().startswith("{")):
                try:
                    content = json.loads(content)
                except ValueError:
                    pass

        return success(operation, {
            "artifact": {
                "path": artifact_path,
                "build_number": number,
                "mime_type": get_mime_type(artifact_path),
                "format": format,
                "size": int(size) if size and str(size).isdigit() else None,
                "truncated": truncated,
                "content": content,
            },
        })
    except Exception as exc:
        return classify_error(exc, operation)
