"""Hook executor - runs plugin shell hooks with a timeout and tagged results.

External failures (non-zero exit, empty output, timeout) are returned as
``ok=False`` results and never raised, so callers must handle them explicitly.
"""

import asyncio
import logging
import os
import signal
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, TextIO

from clawup.constants import LIFECYCLE_HOOK_TIMEOUT_MS, RESOLVE_HOOK_TIMEOUT_MS
from clawup.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


@dataclass(frozen=True)
class HookResult:
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ResolveHookResult:
    ok: bool
    value: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class OnboardHookResult:
    ok: bool
    instructions: str = ""  # Follow-up steps for the operator (captured stdout)
    error: Optional[str] = None


@dataclass(frozen=True)
class ResolvedSecrets:
    ok: bool
    values: Dict[str, str] = field(default_factory=dict)  # envVar -> value
    error: Optional[str] = None


@dataclass
class _ProcessOutcome:
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    spawn_error: Optional[str] = None
    read_error: Optional[str] = None


READ_CHUNK_SIZE = 65536


async def _pump(stream: asyncio.StreamReader, sink: List[bytes], callback: Optional[Callable[[str], None]]):
    """Drain a pipe in fixed-size chunks; callback receives whole lines, however long."""
    pending = b""
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        sink.append(chunk)
        if callback:
            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                callback(line.decode("utf-8", errors="replace") + "\n")
    if callback and pending:
        callback(pending.decode("utf-8", errors="replace"))


def _decode(chunks: List[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


def _terminate(proc: asyncio.subprocess.Process):
    """Signal the hook's whole process group; the hook may have forked children."""
    with suppress(ProcessLookupError):
        os.killpg(proc.pid, signal.SIGTERM)


async def run_shell(
    script: str,
    env: Optional[Mapping[str, str]],
    timeout_ms: int,
    on_stdout: Optional[Callable[[str], None]] = None,
    on_stderr: Optional[Callable[[str], None]] = None,
) -> _ProcessOutcome:
    """Run script under /bin/sh with the ambient environment overlaid by env."""
    merged_env = {**os.environ, **(env or {})}
    try:
        proc = await asyncio.create_subprocess_exec(
            SHELL, "-c", script,
            env=merged_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        return _ProcessOutcome(spawn_error=str(e))

    stdout: List[bytes] = []
    stderr: List[bytes] = []
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump(proc.stdout, stdout, on_stdout),
                _pump(proc.stderr, stderr, on_stderr),
                proc.wait(),
            ),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        _terminate(proc)
        await proc.wait()
        return _ProcessOutcome(stdout=_decode(stdout), stderr=_decode(stderr), timed_out=True)
    except (ValueError, asyncio.LimitOverrunError) as e:
        _terminate(proc)
        await proc.wait()
        return _ProcessOutcome(stdout=_decode(stdout), stderr=_decode(stderr), read_error=str(e))

    return _ProcessOutcome(returncode=proc.returncode, stdout=_decode(stdout), stderr=_decode(stderr))


def _prefixed_writer(label: str, stream: TextIO) -> Callable[[str], None]:
    def write(text: str):
        stream.write(f"[{label}] {text}")
        stream.flush()
    return write


async def run_resolve_hook(
    script: str,
    env: Mapping[str, str],
    timeout_ms: int = RESOLVE_HOOK_TIMEOUT_MS,
) -> ResolveHookResult:
    """Run a resolve hook; trimmed stdout becomes the resolved value."""
    outcome = await run_shell(script, env, timeout_ms)

    if outcome.spawn_error:
        return ResolveHookResult(ok=False, error=f"Failed to spawn process: {outcome.spawn_error}")
    if outcome.read_error:
        return ResolveHookResult(ok=False, error=f"Failed to read resolve hook output: {outcome.read_error}")
    if outcome.timed_out:
        return ResolveHookResult(ok=False, error=f"Resolve hook timed out after {timeout_ms}ms")
    if outcome.returncode != 0:
        return ResolveHookResult(
            ok=False,
            error=f"Resolve hook exited with code {outcome.returncode}. stderr: {outcome.stderr.strip()}",
        )

    value = outcome.stdout.strip()
    if not value:
        return ResolveHookResult(
            ok=False,
            error="Resolve hook produced empty output (resolved value cannot be empty)",
        )
    return ResolveHookResult(ok=True, value=value)


async def run_lifecycle_hook(
    script: str,
    label: str,
    env: Optional[Mapping[str, str]] = None,
    timeout_ms: int = LIFECYCLE_HOOK_TIMEOUT_MS,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> HookResult:
    """Run a postProvision/preStart hook, streaming its output with a [label] prefix.

    Args:
        script: Shell script to execute
        label: Hook label used for streamed output and error messages
        env: Variables layered over the current process environment
        timeout_ms: Timeout in milliseconds
        stdout: Stream for live stdout (default: sys.stdout)
        stderr: Stream for live stderr (default: sys.stderr)
    """
    logger.info(f"Running {label} hook")
    outcome = await run_shell(
        script,
        env,
        timeout_ms,
        on_stdout=_prefixed_writer(label, stdout or sys.stdout),
        on_stderr=_prefixed_writer(label, stderr or sys.stderr),
    )

    if outcome.spawn_error:
        error = f"Failed to spawn {label} process: {outcome.spawn_error}"
    elif outcome.read_error:
        error = f"Failed to read {label} hook output: {outcome.read_error}"
    elif outcome.timed_out:
        error = f"{label} hook timed out after {timeout_ms}ms"
    elif outcome.returncode != 0:
        error = f"{label} hook exited with code {outcome.returncode}. stderr: {outcome.stderr.strip()}"
    else:
        logger.info(f"{label} hook completed")
        return HookResult(ok=True)

    logger.error(error)
    return HookResult(ok=False, error=error)


async def run_onboard_hook(
    script: str,
    env: Mapping[str, str],
    timeout_ms: int = LIFECYCLE_HOOK_TIMEOUT_MS,
    stderr: Optional[TextIO] = None,
) -> OnboardHookResult:
    """Run an onboard hook. stdout is captured as instructions, stderr streamed as progress."""
    outcome = await run_shell(
        script,
        env,
        timeout_ms,
        on_stderr=_prefixed_writer("onboard", stderr or sys.stderr),
    )

    if outcome.spawn_error:
        return OnboardHookResult(ok=False, error=f"Failed to spawn onboard process: {outcome.spawn_error}")
    if outcome.read_error:
        return OnboardHookResult(ok=False, error=f"Failed to read onboard hook output: {outcome.read_error}")
    if outcome.timed_out:
        return OnboardHookResult(ok=False, error=f"Onboard hook timed out after {timeout_ms}ms")
    if outcome.returncode != 0:
        return OnboardHookResult(
            ok=False,
            error=f"Onboard hook exited with code {outcome.returncode}. stderr: {outcome.stderr.strip()}",
        )
    return OnboardHookResult(ok=True, instructions=outcome.stdout.strip())


async def resolve_plugin_secrets(
    manifest: PluginManifest,
    env: Mapping[str, str],
    timeout_ms: int = RESOLVE_HOOK_TIMEOUT_MS,
) -> ResolvedSecrets:
    """Run every resolve hook of a manifest in declaration order.

    Hooks run one at a time; each resolved value is visible to the hooks after it.
    The first failure aborts the batch.
    """
    if not manifest.hooks or not manifest.hooks.resolve:
        return ResolvedSecrets(ok=True)

    hook_env = dict(env)
    values: Dict[str, str] = {}
    for secret_key, script in manifest.hooks.resolve.items():
        secret = manifest.secrets[secret_key]
        result = await run_resolve_hook(script, hook_env, timeout_ms=timeout_ms)
        if not result.ok:
            error = f'Failed to resolve secret "{secret_key}" ({secret.env_var}): {result.error}'
            logger.error(f"{manifest.name}: {error}")
            return ResolvedSecrets(ok=False, error=error)
        values[secret.env_var] = result.value
        hook_env[secret.env_var] = result.value

    logger.info(f"Resolved {len(values)} secret(s) for plugin {manifest.name}")
    return ResolvedSecrets(ok=True, values=values)
