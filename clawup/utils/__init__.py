"""Utility functions for clawup script generation."""

from .compression import compress_script, compress_mime
from .interpolation import interpolate_script, find_unresolved_placeholders
from .redact import redact_secrets
from .shell import shell_quote, single_quote_body
from .workspace import encode_workspace_files, validate_workspace_path

__all__ = [
    'compress_script',
    'compress_mime',
    'interpolate_script',
    'find_unresolved_placeholders',
    'redact_secrets',
    'shell_quote',
    'single_quote_body',
    'encode_workspace_files',
    'validate_workspace_path',
]
