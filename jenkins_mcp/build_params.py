"""
Build parameter resolution.

Tool callers pass parameters as a loose name -> value mapping.  Each value is
resolved once, here, into either a LiteralValue or a FilePath so the request
shaping code can match on the type instead of re-inspecting raw values.

A string value names a file when it points at an existing, readable regular
file.  Paths inside the working directory are always allowed; absolute paths
(and relative ones that escape the working directory) only when the operator
opted in.  Otherwise LocalFileAccessDenied is raised before any request.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Mapping, Union

from jenkins_mcp.errors import InputValidationError, LocalFileAccessDenied


@dataclass(frozen=True)
class LiteralValue:
    name: str
    value: str


@dataclass(frozen=True)
class FilePath:
    name: str
    path: str


BuildParameter = Union[LiteralValue, FilePath]


def _literal_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _is_within(path: str, directory: str) -> bool:
    try:
        return os.path.commonpath([path, directory]) == directory
    except ValueError:
        return False


def resolve_parameter(
    name: str,
    value,
    allow_absolute: bool = False,
    cwd: str | None = None,
) -> BuildParameter:
    if not isinstance(value, str) or not value.strip():
        return LiteralValue(name, _literal_text(value))

    cwd = os.path.realpath(cwd or os.getcwd())
    candidate = value if os.path.isabs(value) else os.path.join(cwd, value)
    if not os.path.isfile(candidate):
        return LiteralValue(name, value)

    resolved = os.path.realpath(candidate)
    if not _is_within(resolved, cwd) and not allow_absolute:
        raise LocalFileAccessDenied(value)
    if not os.access(resolved, os.R_OK):
        return LiteralValue(name, value)
    return FilePath(name, resolved)


def resolve_parameters(
    parameters: Mapping | None,
    allow_absolute: bool = False,
    cwd: str | None = None,
) -> list[BuildParameter]:
    if parameters is None:
        return []
    if not isinstance(parameters, Mapping):
        raise InputValidationError("parameters must be an object mapping names to values")
    return [
        resolve_parameter(str(name), value, allow_absolute, cwd)
        for name, value in parameters.items()
    ]
