"""Spec and state file loading with validation.

SECURITY: All file reads enforce size limits. Input validation is performed
at the boundary so the lifecycle only ever sees typed models.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES, MAX_STATE_FILE_SIZE_BYTES
from .models import VmInstanceSpec, VmInstanceState

logger = logging.getLogger(__name__)

SPEC_KIND = "VmInstance"


class SpecLoadError(Exception):
    """Raised when spec or state loading or validation fails."""

    pass


def _read_limited(path: Path, max_bytes: int, what: str) -> str:
    if not path.exists():
        raise SpecLoadError(f"{what} file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat {what} file {path}: {e}") from e

    if file_size > max_bytes:
        raise SpecLoadError(f"{what} file exceeds maximum size of {max_bytes} bytes: {path}")

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read {what} file {path}: {e}") from e


def _format_validation_error(path: Path, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {path}:\n" + "\n".join(errors)


def parse_spec(raw_data: Any, source: Path) -> VmInstanceSpec:
    """Validate already-parsed YAML content into a VmInstanceSpec.

    Accepts a flat mapping or a Kubernetes-style wrapper
    (apiVersion/kind/metadata/spec). With the wrapper, metadata.name is
    used when spec.name is absent.
    """
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {source}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        kind = raw_data.get("kind")
        if kind is not None and kind != SPEC_KIND:
            raise SpecLoadError(f"Unsupported kind '{kind}' in {source}, expected {SPEC_KIND}")

        spec_data = raw_data.get("spec") or {}
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {source}")

        metadata = raw_data.get("metadata") or {}
        if isinstance(metadata, dict) and "name" not in spec_data and metadata.get("name"):
            spec_data = {**spec_data, "name": metadata["name"]}
    else:
        spec_data = raw_data

    try:
        return VmInstanceSpec.model_validate(spec_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(source, e)) from e


def load_spec(spec_path: Path) -> VmInstanceSpec:
    """Load and validate a VM instance spec from YAML.

    Raises:
        SpecLoadError: If the spec file cannot be loaded or fails validation.
    """
    content = _read_limited(spec_path, MAX_SPEC_FILE_SIZE_BYTES, "Spec")

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    spec = parse_spec(raw_data, spec_path)
    logger.info("Loaded spec for instance '%s' from %s", spec.name, spec_path)
    return spec


def load_state(state_path: Path) -> VmInstanceState | None:
    """Load stored state, or None when no state has been written yet.

    Raises:
        SpecLoadError: If the file exists but is unreadable or invalid.
    """
    if not state_path.exists():
        return None

    content = _read_limited(state_path, MAX_STATE_FILE_SIZE_BYTES, "State")

    try:
        raw_data = json.loads(content)
    except json.JSONDecodeError as e:
        raise SpecLoadError(f"Invalid JSON in {state_path}: {e}") from e

    try:
        return VmInstanceState.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(state_path, e)) from e


def save_state(state_path: Path, state: VmInstanceState) -> None:
    """Atomically write stored state as deterministic JSON."""
    state_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = state_path.with_suffix(state_path.suffix + ".tmp")
    try:
        tmp_path.write_text(state.to_json() + "\n", encoding="utf-8")
        os.replace(tmp_path, state_path)
    except OSError as e:
        raise SpecLoadError(f"Failed to write state file {state_path}: {e}") from e

    logger.debug("Saved state", extra={"state_path": str(state_path), "uuid": state.uuid})


def remove_state(state_path: Path) -> None:
    """Delete a stored state file if present."""
    try:
        state_path.unlink(missing_ok=True)
    except OSError as e:
        raise SpecLoadError(f"Failed to remove state file {state_path}: {e}") from e
