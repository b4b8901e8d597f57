"""Tests for the hook executor (runs real /bin/sh processes)."""

import asyncio
import io
from unittest.mock import patch

from clawup.plugins.hooks import (
    resolve_plugin_secrets,
    run_lifecycle_hook,
    run_onboard_hook,
    run_resolve_hook,
    run_shell,
)
from clawup.plugins.manifest import PluginManifest


def chain_manifest(resolve: dict) -> PluginManifest:
    return PluginManifest.model_validate({
        "name": "chain",
        "displayName": "Chain",
        "installable": False,
        "secrets": {
            "first": {"envVar": "CHAIN_FIRST", "scope": "agent", "isSecret": False, "autoResolvable": True},
            "second": {"envVar": "CHAIN_SECOND", "scope": "agent", "isSecret": False, "autoResolvable": True},
        },
        "hooks": {"resolve": resolve},
    })


class TestResolveHook:
    """Resolve hooks succeed only with exit 0 and non-empty stdout."""

    def test_trimmed_stdout_is_value(self):
        result = asyncio.run(run_resolve_hook("echo '  uuid-123  '", {}))

        assert result.ok
        assert result.value == "uuid-123"
        assert result.error is None

    def test_non_zero_exit_embeds_stderr(self):
        result = asyncio.run(run_resolve_hook("echo boom >&2; exit 3", {}))

        assert not result.ok
        assert result.error == "Resolve hook exited with code 3. stderr: boom"

    def test_empty_output(self):
        result = asyncio.run(run_resolve_hook("printf '   \\n'", {}))

        assert not result.ok
        assert "empty output" in result.error

    def test_timeout(self):
        result = asyncio.run(run_resolve_hook("sleep 5", {}, timeout_ms=200))

        assert not result.ok
        assert result.error == "Resolve hook timed out after 200ms"

    def test_env_is_layered_over_process_env(self, monkeypatch):
        monkeypatch.setenv("CLAWUP_AMBIENT", "ambient")
        result = asyncio.run(run_resolve_hook('echo "$CLAWUP_AMBIENT-$HOOK_VALUE"', {"HOOK_VALUE": "given"}))

        assert result.value == "ambient-given"


class TestResolvePluginSecrets:
    """Batch resolution runs in declaration order and stops at the first failure."""

    def test_sequential_env_layering(self):
        """A later hook sees the value resolved by an earlier one."""
        manifest = chain_manifest({"first": "echo one", "second": 'echo "$CHAIN_FIRST-two"'})

        result = asyncio.run(resolve_plugin_secrets(manifest, {}))

        assert result.ok
        assert result.values == {"CHAIN_FIRST": "one", "CHAIN_SECOND": "one-two"}

    def test_first_failure_aborts(self):
        manifest = chain_manifest({"first": "exit 1", "second": "echo never"})

        result = asyncio.run(resolve_plugin_secrets(manifest, {}))

        assert not result.ok
        assert result.values == {}
        assert result.error.startswith('Failed to resolve secret "first" (CHAIN_FIRST): ')
        assert "exited with code 1" in result.error

    def test_manifest_without_hooks(self):
        manifest = PluginManifest(name="plain", display_name="Plain", installable=True)

        result = asyncio.run(resolve_plugin_secrets(manifest, {}))

        assert result.ok
        assert result.values == {}


class TestLifecycleHook:
    """postProvision / preStart hooks stream output with a label prefix."""

    def test_success_streams_output(self):
        out, err = io.StringIO(), io.StringIO()

        result = asyncio.run(run_lifecycle_hook(
            "echo created; echo progress >&2", "postProvision", stdout=out, stderr=err,
        ))

        assert result.ok
        assert out.getvalue() == "[postProvision] created\n"
        assert err.getvalue() == "[postProvision] progress\n"

    def test_failure_names_label(self):
        result = asyncio.run(run_lifecycle_hook(
            "echo nope >&2; exit 2", "preStart", stdout=io.StringIO(), stderr=io.StringIO(),
        ))

        assert not result.ok
        assert result.error == "preStart hook exited with code 2. stderr: nope"

    def test_timeout(self):
        result = asyncio.run(run_lifecycle_hook(
            "sleep 5", "preStart", timeout_ms=200, stdout=io.StringIO(), stderr=io.StringIO(),
        ))

        assert not result.ok
        assert result.error == "preStart hook timed out after 200ms"


class TestOnboardHook:
    """Onboard hooks capture stdout as operator instructions."""

    def test_instructions_captured(self):
        result = asyncio.run(run_onboard_hook(
            'echo "Paste $APP_ID into the dashboard"', {"APP_ID": "A1"}, stderr=io.StringIO(),
        ))

        assert result.ok
        assert result.instructions == "Paste A1 into the dashboard"

    def test_failure(self):
        result = asyncio.run(run_onboard_hook("exit 4", {}, stderr=io.StringIO()))

        assert not result.ok
        assert "code 4" in result.error


class TestRunShell:
    """Tests for the shared process primitive."""

    def test_separate_streams(self):
        outcome = asyncio.run(run_shell("echo out; echo err >&2", None, 5000))

        assert outcome.returncode == 0
        assert outcome.stdout == "out\n"
        assert outcome.stderr == "err\n"
        assert not outcome.timed_out

    def test_timeout_kills_child_processes(self):
        outcome = asyncio.run(run_shell("sleep 5 & sleep 5; wait", None, 200))

        assert outcome.timed_out
        assert outcome.returncode is None


class TestLargeOutput:
    """Output lines longer than the stream buffer never escape as exceptions."""

    def test_long_resolved_value(self):
        result = asyncio.run(run_resolve_hook("head -c 70000 /dev/zero | tr '\\0' a", {}))

        assert result.ok
        assert result.value == "a" * 70000

    def test_long_lifecycle_line_is_streamed_whole(self):
        out = io.StringIO()

        result = asyncio.run(run_lifecycle_hook(
            "head -c 150000 /dev/zero | tr '\\0' b; echo; echo done", "preStart",
            stdout=out, stderr=io.StringIO(),
        ))

        assert result.ok
        assert out.getvalue() == f"[preStart] {'b' * 150000}\n[preStart] done\n"

    def test_unterminated_last_line_is_flushed(self):
        out = io.StringIO()

        asyncio.run(run_lifecycle_hook("printf tail", "preStart", stdout=out, stderr=io.StringIO()))

        assert out.getvalue() == "[preStart] tail"

    def test_read_failure_is_a_result(self):
        async def broken_pump(stream, sink, callback):
            raise ValueError("Separator is not found, and chunk exceed the limit")

        with patch("clawup.plugins.hooks._pump", new=broken_pump):
            result = asyncio.run(run_resolve_hook("sleep 5", {}, timeout_ms=10000))

        assert not result.ok
        assert result.error.startswith("Failed to read resolve hook output: ")
