"""Workspace file injection - path validation and inline gzip+base64 encoding."""

import base64
import gzip
from dataclasses import dataclass
from typing import List, Mapping

from clawup.errors import WorkspacePathError


@dataclass(frozen=True)
class EncodedFile:
    path: str
    gzip_base64: str


def validate_workspace_path(path: str) -> str:
    """Reject paths that could escape the workspace directory.

    Args:
        path: Relative path as supplied by an identity bundle or request

    Returns:
        The path with backslashes normalized to forward slashes

    Raises:
        WorkspacePathError: path contains "..", starts with "/", or contains a NUL byte
    """
    normalized = path.replace("\\", "/")
    if ".." in normalized or normalized.startswith("/") or "\0" in normalized:
        raise WorkspacePathError(path)
    return normalized


def gzip_base64(content: str) -> str:
    # mtime=0 keeps output stable across runs
    return base64.b64encode(gzip.compress(content.encode("utf-8"), mtime=0)).decode("ascii")


def encode_workspace_files(files: Mapping[str, str]) -> List[EncodedFile]:
    """Validate every path first, then encode; nothing is encoded if any path is bad."""
    normalized = [(validate_workspace_path(path), content) for path, content in files.items()]
    return [EncodedFile(path=path, gzip_base64=gzip_base64(content)) for path, content in normalized]
