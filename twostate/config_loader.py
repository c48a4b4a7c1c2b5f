"""
twostate/config_loader.py - Self-Validating Config Loading

Loads ExperimentConfig from JSON or YAML. Auto-validates on load (not a
separate step):
- strict=True: invalid input raises ValueError
- strict=False: invalid input is healed to safe values, each repair reported
  through warnings.warn
"""

import json
import warnings
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from .constants import DEFAULT_BATCH_COUNT, MAX_COUNT, MULTI_COUNT_QUANTITIES, PREPARATION_TIME_MS
from .outcome_space import SystemType, outcome_space_for
from .types_config import ExperimentConfig, MANDATORY_SCENARIOS

__all__ = [
    'load_config',
    'config_from_dict',
    'config_to_dict',
    'save_config',
]

_VALID_SYSTEM_TYPES = {t.value for t in SystemType}

_KNOWN_FIELDS = {
    'system_type', 'max_count', 'initial_count', 'allowed_counts',
    'preparation_time_ms', 'initial_bias', 'initial_label', 'scenario_name',
    'tenant_id', 'base_scenario',
}


# =============================================================================
# Module-Level Functions
# =============================================================================

def load_config(path: str, strict: bool = False) -> ExperimentConfig:
    """
    Load config from a JSON/YAML file.

    Args:
        path: Path to config file (.json, .yaml, .yml)
        strict: If True, raise on invalid; if False, self-heal with warnings

    Returns:
        Validated, frozen ExperimentConfig

    Raises:
        FileNotFoundError: If path doesn't exist
        ValueError: If the file isn't a mapping, or strict=True and validation fails
    """
    path_obj = Path(path)

    if not path_obj.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = path_obj.read_text()

    if path_obj.suffix in ('.yaml', '.yml'):
        data = yaml.safe_load(content)
    else:
        data = json.loads(content)

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")

    return config_from_dict(data, strict=strict)


def config_from_dict(data: Dict[str, Any], strict: bool = False) -> ExperimentConfig:
    """
    Build an ExperimentConfig from a dict.

    A 'base_scenario' key names a preset from MANDATORY_SCENARIOS whose fields
    fill in anything the dict leaves out.
    """
    data = dict(data)
    base_name = data.pop('base_scenario', None)
    if base_name is not None:
        if base_name not in MANDATORY_SCENARIOS:
            raise ValueError(
                f"Unknown base_scenario '{base_name}'. Must be one of: {sorted(MANDATORY_SCENARIOS)}"
            )
        merged = asdict(MANDATORY_SCENARIOS[base_name])
        merged.update(data)
        data = merged

    is_valid, errors, warns = _validate(data)

    if strict:
        if not is_valid or warns:
            raise ValueError(f"Config validation failed: {errors + warns}")
        healed = data
    else:
        if not is_valid:
            raise ValueError(f"Config validation failed: {errors}")
        healed = _self_heal(data, warns)
        for message in warns:
            warnings.warn(message, UserWarning, stacklevel=3)

    fields = {k: v for k, v in healed.items() if k in _KNOWN_FIELDS and k != 'base_scenario'}
    _fill_derived_defaults(fields)
    return ExperimentConfig(**fields)


def _fill_derived_defaults(fields: Dict[str, Any]) -> None:
    """Defaults that depend on other fields: labels on system_type, counts on max_count."""
    system_type = fields.get('system_type', 'classical')
    if 'initial_label' not in fields:
        fields['initial_label'] = outcome_space_for(system_type).labels[0]

    max_count = fields.get('max_count', MAX_COUNT)
    if 'allowed_counts' not in fields:
        defaults = [c for c in MULTI_COUNT_QUANTITIES if c <= max_count] if max_count > 1 else []
        fields['allowed_counts'] = defaults or [max_count]
    fields['allowed_counts'] = tuple(int(c) for c in fields['allowed_counts'])

    if 'initial_count' not in fields:
        allowed = fields['allowed_counts']
        fields['initial_count'] = DEFAULT_BATCH_COUNT if DEFAULT_BATCH_COUNT in allowed else min(allowed)


def config_to_dict(config: ExperimentConfig) -> Dict[str, Any]:
    data = asdict(config)
    data['allowed_counts'] = list(config.allowed_counts)
    return data


def save_config(config: ExperimentConfig, path: str) -> None:
    """Write a config as JSON or YAML depending on the suffix."""
    path_obj = Path(path)
    data = config_to_dict(config)
    if path_obj.suffix in ('.yaml', '.yml'):
        path_obj.write_text(yaml.safe_dump(data, sort_keys=True))
    else:
        path_obj.write_text(json.dumps(data, indent=2, sort_keys=True))


# =============================================================================
# Internal Validation Functions
# =============================================================================

def _validate(data: Dict[str, Any]) -> Tuple[bool, List[str], List[str]]:
    """
    Validate config data.

    Returns: (is_valid, errors, warnings)

    Rules:
    - system_type is classical or quantum (error)
    - initial_label belongs to the system type (error)
    - counts are positive integers (error), inside max_count (warning)
    - initial_bias in 0.0-1.0 (warning)
    - preparation_time_ms >= 0 (warning)
    - unknown fields (warning)
    """
    errors: List[str] = []
    warns: List[str] = []

    system_type = data.get('system_type', 'classical')
    if system_type not in _VALID_SYSTEM_TYPES:
        errors.append(f"Invalid system_type '{system_type}'. Must be one of: {sorted(_VALID_SYSTEM_TYPES)}")
    elif 'initial_label' in data:
        space = outcome_space_for(system_type)
        if not space.is_valid(data['initial_label']):
            errors.append(
                f"initial_label '{data['initial_label']}' is not a {system_type} outcome: {space.labels}"
            )

    max_count = data.get('max_count', MAX_COUNT)
    if not isinstance(max_count, int) or isinstance(max_count, bool) or max_count < 1:
        errors.append(f"max_count must be a positive integer, got {max_count!r}")
        max_count = MAX_COUNT

    if 'allowed_counts' in data:
        counts = data['allowed_counts']
        if not isinstance(counts, (list, tuple)) or not counts:
            errors.append(f"allowed_counts must be a non-empty list, got {counts!r}")
        else:
            for c in counts:
                if not isinstance(c, int) or isinstance(c, bool) or c < 1:
                    errors.append(f"allowed_counts entries must be positive integers, got {c!r}")
                elif c > max_count:
                    warns.append(f"allowed_counts entry {c} exceeds max_count {max_count}")

    if 'initial_count' in data:
        val = data['initial_count']
        if not isinstance(val, int) or isinstance(val, bool) or val < 1:
            errors.append(f"initial_count must be a positive integer, got {val!r}")
        elif isinstance(data.get('allowed_counts'), (list, tuple)) and val not in data['allowed_counts']:
            warns.append(f"initial_count {val} not in allowed_counts {list(data['allowed_counts'])}")

    if 'initial_bias' in data:
        val = data['initial_bias']
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            errors.append(f"initial_bias must be numeric, got {type(val).__name__}")
        elif val < 0.0 or val > 1.0:
            warns.append(f"initial_bias {val} out of range [0.0, 1.0]")

    if 'preparation_time_ms' in data:
        val = data['preparation_time_ms']
        if isinstance(val, bool) or not isinstance(val, (int, float)):
            errors.append(f"preparation_time_ms must be numeric, got {type(val).__name__}")
        elif val < 0:
            warns.append(f"preparation_time_ms {val} must be >= 0")

    unknown = set(data.keys()) - _KNOWN_FIELDS
    for field in sorted(unknown):
        warns.append(f"Ignoring unknown field: {field}")

    is_valid = len(errors) == 0
    return is_valid, errors, warns


def _self_heal(data: Dict[str, Any], warns: List[str]) -> Dict[str, Any]:
    """
    Apply self-healing to validated config data.

    Self-healing behavior:
    - Out-of-range bias -> clamp to [0, 1]
    - Negative preparation time -> default duration
    - Counts above max_count -> dropped
    - initial_count outside allowed_counts -> smallest allowed count
    - Unknown field -> ignored (already warned)
    """
    healed = dict(data)

    if 'initial_bias' in healed:
        val = healed['initial_bias']
        if val < 0.0:
            healed['initial_bias'] = 0.0
            warns.append(f"Clamped initial_bias from {val} to 0.0")
        elif val > 1.0:
            healed['initial_bias'] = 1.0
            warns.append(f"Clamped initial_bias from {val} to 1.0")

    if 'preparation_time_ms' in healed and healed['preparation_time_ms'] < 0:
        warns.append(f"Reset preparation_time_ms from {healed['preparation_time_ms']} to {PREPARATION_TIME_MS}")
        healed['preparation_time_ms'] = PREPARATION_TIME_MS

    max_count = healed.get('max_count', MAX_COUNT)
    if 'allowed_counts' in healed:
        kept = [c for c in healed['allowed_counts'] if c <= max_count]
        if len(kept) != len(healed['allowed_counts']):
            if not kept:
                kept = [max_count]
            warns.append(f"Trimmed allowed_counts to {kept}")
            healed['allowed_counts'] = kept

    allowed = healed.get('allowed_counts')
    if allowed is not None and 'initial_count' in healed and healed['initial_count'] not in allowed:
        warns.append(f"Reset initial_count from {healed['initial_count']} to {min(allowed)}")
        healed['initial_count'] = min(allowed)

    for field in set(healed.keys()) - _KNOWN_FIELDS:
        del healed[field]

    return healed
