"""Tiered repository configuration.

Three tiers feed the effective repository list of a workspace:

- workspace overrides and the default template, both kept in
  ``.workspace/config.json``;
- the legacy ``workspace.conf`` flat file (``url [branch] [ref]`` per line).

:class:`ConfigStore` reads and writes the tiers, :class:`ConfigResolver`
merges them.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout
from loguru import logger

from .errors import ConfigError
from .layout import RootLayout
from .models import ConfigTier, RepositorySpec, ResolvedSpec

LOCK_TIMEOUT = 10.0

# =============================================================================
# Validation
# =============================================================================

_FORBIDDEN_REF_CHARS = re.compile(r"[\s~^:?*\[\\\x00-\x1f\x7f]")


def check_ref_name(value: str, what: str = "branch") -> str | None:
    """Return a problem description if ``value`` is not a usable git ref name."""
    if not value:
        return f"{what} name is empty"
    if _FORBIDDEN_REF_CHARS.search(value):
        return f"{what} name {value!r} contains a forbidden character"
    if ".." in value or "@{" in value or "//" in value:
        return f"{what} name {value!r} contains '..', '@{{' or '//'"
    if value.startswith(("-", "/", ".")) or value.endswith(("/", ".", ".lock")):
        return f"{what} name {value!r} has an invalid start or end"
    if value == "@":
        return f"{what} name '@' is reserved"
    if any(part.startswith(".") or part.endswith(".lock") for part in value.split("/")):
        return f"{what} name {value!r} has a component starting with '.' or ending in '.lock'"
    return None


def validate_workspace_name(name: str) -> str:
    """Raise ConfigError unless ``name`` can be used as a workspace name."""
    problem = check_ref_name(name, "workspace")
    if problem:
        raise ConfigError(problem)
    return name


def check_url(url: str) -> str | None:
    if not url:
        return "repository URL is missing"
    if any(ch.isspace() for ch in url):
        return f"repository URL {url!r} contains whitespace"
    if url.startswith("-"):
        return f"repository URL {url!r} starts with '-'"
    return None


# =============================================================================
# Decoding (RepositorySpec | ConfigError)
# =============================================================================


def make_spec(
    url: str,
    branch: str | None = None,
    ref: str | None = None,
    *,
    source: str = "",
    line: int | None = None,
) -> RepositorySpec | ConfigError:
    """Validate raw values and build a spec, or describe why they are invalid."""
    url = (url or "").strip()
    branch = (branch or "").strip() or None
    ref = (ref or "").strip() or None

    problem = check_url(url)
    if problem is None and branch is not None:
        problem = check_ref_name(branch, "branch")
    if problem is None and ref is not None:
        problem = check_ref_name(ref, "ref")
    if problem is not None:
        return ConfigError(problem, source=source, line=line)
    return RepositorySpec(url=url, branch=branch, pinned_ref=ref)


def decode_line(line: str, lineno: int, source: str) -> RepositorySpec | ConfigError | None:
    """Decode one legacy line; None for blank lines and comments."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    fields = stripped.split()
    if len(fields) > 3:
        return ConfigError(
            f"expected 'url [branch] [ref]', got {len(fields)} fields",
            source=source,
            line=lineno,
        )
    url, branch, ref = (fields + [None, None])[:3]
    return make_spec(url, branch, ref, source=source, line=lineno)


def decode_record(record: Any, index: int, source: str) -> RepositorySpec | ConfigError:
    """Decode one JSON entry of the configuration store."""
    if not isinstance(record, dict):
        return ConfigError(f"entry {index} is not an object", source=source)
    url = record.get("url")
    branch = record.get("branch")
    ref = record.get("ref")
    for key, value in (("url", url), ("branch", branch), ("ref", ref)):
        if value is not None and not isinstance(value, str):
            return ConfigError(f"entry {index}: {key} must be a string", source=source)
    if not url:
        return ConfigError(f"entry {index}: repository URL is missing", source=source)
    result = make_spec(url, branch, ref)
    if isinstance(result, ConfigError):
        return ConfigError(f"entry {index}: {result.message}", source=source)
    return result


def _collect(decoded: Iterable[RepositorySpec | ConfigError | None]) -> list[RepositorySpec]:
    specs: list[RepositorySpec] = []
    for item in decoded:
        if isinstance(item, ConfigError):
            raise item
        if item is not None:
            specs.append(item)
    return specs


def parse_legacy_text(text: str, source: str) -> list[RepositorySpec]:
    """Decode a whole legacy file, raising the first ConfigError."""
    return _collect(
        decode_line(line, lineno, source) for lineno, line in enumerate(text.splitlines(), 1)
    )


def _upsert(entries: list[dict], spec: RepositorySpec) -> None:
    """Replace the same-name entry in place, else append."""
    for index, record in enumerate(entries):
        if isinstance(record, dict) and RepositorySpec(url=record.get("url") or "").name == spec.name:
            entries[index] = spec.to_record()
            return
    entries.append(spec.to_record())


# =============================================================================
# Store
# =============================================================================


class ConfigStore:
    """Reads and writes the three configuration tiers of one root."""

    def __init__(self, layout: RootLayout):
        self.layout = layout

    # -- reading -------------------------------------------------------------

    def _load_document(self) -> dict:
        path = self.layout.config_file
        if not path.exists():
            return {"default": [], "workspaces": {}}
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"cannot read configuration: {e}", source=str(path)) from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"invalid JSON: {e}", source=str(path)) from e

        if not isinstance(document, dict):
            raise ConfigError("top level must be an object", source=str(path))
        document.setdefault("default", [])
        document.setdefault("workspaces", {})
        if not isinstance(document["default"], list):
            raise ConfigError("'default' must be a list", source=str(path))
        if not isinstance(document["workspaces"], dict) or not all(
            isinstance(v, list) for v in document["workspaces"].values()
        ):
            raise ConfigError("'workspaces' must map names to lists", source=str(path))
        return document

    def _decode_records(self, records: list, label: str) -> list[RepositorySpec]:
        source = f"{self.layout.config_file} ({label})"
        return _collect(decode_record(record, i, source) for i, record in enumerate(records))

    def read_overrides(self, workspace: str) -> list[RepositorySpec]:
        records = self._load_document()["workspaces"].get(workspace, [])
        return self._decode_records(records, f"workspace {workspace}")

    def read_defaults(self) -> list[RepositorySpec]:
        return self._decode_records(self._load_document()["default"], "default")

    def read_legacy(self, path: Path | None = None) -> list[RepositorySpec]:
        """Entries of the legacy flat file; a missing default file is an empty tier."""
        explicit = path is not None
        path = path or self.layout.legacy_file
        if not path.exists():
            if explicit:
                raise ConfigError(f"configuration file not found: {path}")
            return []
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"cannot read configuration: {e}", source=str(path)) from e
        return parse_legacy_text(text, str(path))

    def read_tier(self, tier: ConfigTier, workspace: str) -> list[RepositorySpec]:
        if tier == ConfigTier.WORKSPACE_OVERRIDE:
            return self.read_overrides(workspace)
        if tier == ConfigTier.DEFAULT_TEMPLATE:
            return self.read_defaults()
        return self.read_legacy()

    def configured_workspaces(self) -> list[str]:
        """Workspaces that have override entries."""
        return sorted(self._load_document()["workspaces"])

    # -- writing -------------------------------------------------------------

    def _mutate(self, change: Callable[[dict], None]) -> None:
        """Apply ``change`` to the document under the lock and write it atomically."""
        self.layout.config_dir.mkdir(parents=True, exist_ok=True)
        try:
            with FileLock(str(self.layout.lock_file), timeout=LOCK_TIMEOUT):
                document = self._load_document()
                change(document)
                self._atomic_write(document)
        except Timeout as e:
            raise ConfigError(
                f"timed out waiting for configuration lock {self.layout.lock_file}"
            ) from e

    def _atomic_write(self, document: dict) -> None:
        path = self.layout.config_file
        fd, temp_path_str = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp_", suffix=".json")
        temp_path = Path(temp_path_str)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
            logger.debug("Atomic write completed: {}", path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def set_override(self, workspace: str, spec: RepositorySpec) -> None:
        validate_workspace_name(workspace)

        def change(document: dict) -> None:
            _upsert(document["workspaces"].setdefault(workspace, []), spec)

        self._mutate(change)
        logger.info("Set {} for workspace {}", spec.describe(workspace), workspace)

    def set_default(self, spec: RepositorySpec) -> None:
        self._mutate(lambda document: _upsert(document["default"], spec))
        logger.info("Set default {}", spec.describe())

    def unset_override(self, workspace: str, name: str) -> bool:
        removed: list[bool] = []

        def change(document: dict) -> None:
            entries = document["workspaces"].get(workspace, [])
            kept = [
                r
                for r in entries
                if not (isinstance(r, dict) and RepositorySpec(url=r.get("url") or "").name == name)
            ]
            removed.append(len(kept) != len(entries))
            if kept:
                document["workspaces"][workspace] = kept
            else:
                document["workspaces"].pop(workspace, None)

        self._mutate(change)
        return removed[0]

    def import_legacy(self, workspace: str, path: Path | None = None) -> list[RepositorySpec]:
        """Copy every legacy entry into the workspace's override tier, all or nothing."""
        validate_workspace_name(workspace)
        specs = self.read_legacy(path or self.layout.legacy_file)
        if not specs:
            return []

        def change(document: dict) -> None:
            entries = document["workspaces"].setdefault(workspace, [])
            for spec in specs:
                _upsert(entries, spec)

        self._mutate(change)
        logger.info("Imported {} entries into workspace {}", len(specs), workspace)
        return specs

    def drop_workspace(self, workspace: str) -> None:
        """Forget a workspace's overrides (used when the workspace is cleaned)."""
        if not self.layout.config_file.exists():
            return
        if workspace not in self._load_document()["workspaces"]:
            return
        self._mutate(lambda document: document["workspaces"].pop(workspace, None))


# =============================================================================
# Resolver
# =============================================================================


class ConfigResolver:
    """Merges the tiers into one effective, ordered repository list."""

    TIERS = (
        ConfigTier.WORKSPACE_OVERRIDE,
        ConfigTier.DEFAULT_TEMPLATE,
        ConfigTier.LEGACY_FILE,
    )

    def __init__(self, store: ConfigStore):
        self.store = store

    def resolve_detailed(self, workspace: str) -> list[ResolvedSpec]:
        """Effective specs with the tier each one came from.

        Within a tier a later entry for the same name replaces the earlier one
        but keeps its position.
        """
        merged: dict[str, ResolvedSpec] = {}
        for tier in self.TIERS:
            tier_specs: dict[str, RepositorySpec] = {}
            for spec in self.store.read_tier(tier, workspace):
                tier_specs[spec.name] = spec
            for name, spec in tier_specs.items():
                if name not in merged:
                    merged[name] = ResolvedSpec(spec=spec, tier=tier)
        return list(merged.values())

    def resolve(self, workspace: str) -> list[RepositorySpec]:
        return [resolved.spec for resolved in self.resolve_detailed(workspace)]

    def find(self, workspace: str, name: str) -> RepositorySpec | None:
        for spec in self.resolve(workspace):
            if spec.name == name:
                return spec
        return None
