"""Identity bundle loader - reads an agent identity from a local directory.

Layout::

    identity.yaml          # or identity.json
    SOUL.md, skills/...    # workspace files
    plugins/<name>.yaml    # optional plugin manifest overrides
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError

from clawup.errors import ManifestError
from clawup.models.requests import IdentityBundle, IdentityManifest
from clawup.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES = ("identity.yaml", "identity.json")
PLUGIN_OVERRIDE_DIR = "plugins"

_TEMPLATE_VAR = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def _parse_file(path: Path) -> Any:
    content = path.read_text(encoding="utf-8")
    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content)
        return json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ManifestError(f"Failed to parse {path.name} in {path.parent}: {e}") from e


def _read_files(root: Path) -> Dict[str, str]:
    """Text files under root keyed by POSIX relative path; hidden entries are skipped."""
    files = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root)
        if any(part.startswith(".") for part in rel.parts) or not path.is_file():
            continue
        try:
            files[rel.as_posix()] = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Skipping binary file {rel}")
    return files


def substitute_template_vars(content: str, values: Mapping[str, str]) -> str:
    """Replace {{VAR}} markers; unknown markers are left untouched."""
    return _TEMPLATE_VAR.sub(lambda m: values.get(m.group(1), m.group(0)), content)


def parse_identity_manifest(raw: Any, source: str) -> IdentityManifest:
    if not isinstance(raw, dict):
        raise ManifestError(f"identity manifest at {source} must be a mapping")
    try:
        return IdentityManifest.model_validate(raw)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors() if err["type"] == "missing"]
        if missing:
            raise ManifestError(
                f"identity manifest at {source} is missing required fields: {', '.join(missing)}"
            ) from e
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "root"
        raise ManifestError(f'identity manifest: "{field}" - {first["msg"]}') from e


def load_plugin_overrides(identity_dir: Path) -> Dict[str, PluginManifest]:
    overrides = {}
    plugin_dir = identity_dir / PLUGIN_OVERRIDE_DIR
    if not plugin_dir.is_dir():
        return overrides
    for path in sorted(plugin_dir.iterdir()):
        if path.suffix not in (".yaml", ".yml", ".json") or path.name.startswith("."):
            continue
        try:
            manifest = PluginManifest.model_validate(_parse_file(path))
        except ValidationError as e:
            raise ManifestError(f"Invalid plugin manifest {path.name}: {e}") from e
        overrides[manifest.name] = manifest
        logger.info(f"Loaded plugin manifest override: {manifest.name}")
    return overrides


def load_identity(
    identity_dir: Path,
    template_values: Optional[Mapping[str, str]] = None,
) -> IdentityBundle:
    """Load an identity bundle from a local directory.

    Args:
        identity_dir: Directory containing identity.yaml (or identity.json)
        template_values: Values for the manifest's templateVars

    Returns:
        IdentityBundle with workspace files already template-substituted

    Raises:
        ManifestError: Missing directory or manifest, unparseable or invalid manifest
    """
    identity_dir = Path(identity_dir).resolve()
    if not identity_dir.is_dir():
        raise ManifestError(f"Identity directory not found: {identity_dir}")

    manifest_path = next(
        (identity_dir / name for name in MANIFEST_FILENAMES if (identity_dir / name).exists()),
        None,
    )
    if manifest_path is None:
        raise ManifestError(f"identity.yaml not found in {identity_dir}")

    manifest = parse_identity_manifest(_parse_file(manifest_path), str(identity_dir))

    values = dict(template_values or {})
    missing = [v for v in manifest.template_vars if v not in values]
    if missing:
        logger.warning(f"Identity {manifest.name}: no value for template vars {missing}")

    files = {}
    for rel, content in _read_files(identity_dir).items():
        if rel == manifest_path.name or rel.startswith(f"{PLUGIN_OVERRIDE_DIR}/"):
            continue
        files[rel] = substitute_template_vars(content, values) if values else content

    overrides = load_plugin_overrides(identity_dir)
    logger.info(f"Loaded identity {manifest.name} ({len(files)} files, {len(overrides)} plugin overrides)")
    return IdentityBundle(manifest=manifest, files=files, plugin_manifests=overrides)
