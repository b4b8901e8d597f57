"""Shell quoting helpers for generated scripts."""

import shlex


def shell_quote(value: str) -> str:
    """Quote a value as a single shell word."""
    return shlex.quote(value)


def single_quote_body(script: str) -> str:
    """Wrap a script for `bash -c '...'`, escaping embedded single quotes."""
    return "'" + script.replace("'", "'\\''") + "'"


def heredoc(command: str, body: str, delimiter: str) -> str:
    """Render `command << 'DELIM'` with a quoted (non-expanding) heredoc."""
    return f"{command} << '{delimiter}'\n{body}\n{delimiter}"
