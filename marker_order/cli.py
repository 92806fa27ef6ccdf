"""
CLI module for marker ordering.

Handles run configuration loading, validation, and mode dispatching.
"""

from typing import Dict, Any
from pathlib import Path
import yaml

from .data_models import VERBOSITY_CHANNELS
from .candidates import STRATEGIES, PREFERENCES
from .evaluation import OBJECTIVES


class ConfigValidationError(Exception):
    """Raised when run configuration is invalid."""
    pass


def load_run_config(config_path: str) -> Dict[str, Any]:
    """
    Load run configuration from YAML file.

    Args:
        config_path: Path to run configuration YAML file

    Returns:
        Dictionary containing run configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in configuration file: {e}")

    if config is None:
        raise ConfigValidationError("Configuration file is empty")

    return config


def validate_run_config(config: Dict[str, Any]) -> None:
    """
    Validate run configuration structure.

    Args:
        config: Run configuration dictionary

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a mapping")

    if 'mode' not in config:
        raise ConfigValidationError("Missing required field: 'mode'")

    mode = config['mode']
    if mode not in ['ripple', 'order']:
        raise ConfigValidationError(
            f"Invalid mode: '{mode}'. Must be 'ripple' or 'order'"
        )

    for field in ['input', 'output']:
        if field not in config:
            raise ConfigValidationError(f"Missing required field: '{field}'")
        if not isinstance(config[field], dict):
            raise ConfigValidationError(f"'{field}' must be a dictionary")

    if 'root' not in config['output']:
        raise ConfigValidationError("Missing required field: 'output.root'")

    _validate_input_config(config['input'])

    verbosity = config.get('verbosity', [])
    if not isinstance(verbosity, list):
        raise ConfigValidationError("'verbosity' must be a list")
    unknown = [c for c in verbosity if c not in VERBOSITY_CHANNELS]
    if unknown:
        raise ConfigValidationError(
            f"Unknown verbosity channel(s): {unknown}. Must be among {list(VERBOSITY_CHANNELS)}"
        )

    seed = config.get('random_seed')
    if seed is not None and (not isinstance(seed, int) or seed < 0):
        raise ConfigValidationError(f"'random_seed' must be a non-negative integer, got: {seed}")

    if mode == 'ripple':
        _validate_ripple_config(config)
    elif mode == 'order':
        _validate_order_config(config)


def _validate_input_config(input_config: Dict[str, Any]) -> None:
    """
    Validate input section shared by both modes.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if 'rf_matrix' not in input_config:
        raise ConfigValidationError("Missing required field: 'input.rf_matrix'")

    rf_path = Path(input_config['rf_matrix'])
    if not rf_path.exists():
        raise ConfigValidationError(f"Recombination matrix not found: {rf_path}")

    if 'categories' in input_config:
        cat_path = Path(input_config['categories'])
        if not cat_path.exists():
            raise ConfigValidationError(f"Category file not found: {cat_path}")

    if 'n_individuals' not in input_config:
        raise ConfigValidationError("Missing required field: 'input.n_individuals'")

    n_ind = input_config['n_individuals']
    if not isinstance(n_ind, int) or n_ind <= 0:
        raise ConfigValidationError(
            f"'input.n_individuals' must be a positive integer, got: {n_ind}"
        )

    markers = input_config.get('markers')
    if markers is not None and not isinstance(markers, list):
        raise ConfigValidationError("'input.markers' must be a list of marker names")


def _check_int(section: Dict[str, Any], key: str, prefix: str, minimum: int = 1) -> None:
    if key in section:
        value = section[key]
        if not isinstance(value, int) or value < minimum:
            raise ConfigValidationError(
                f"'{prefix}.{key}' must be an integer >= {minimum}, got: {value}"
            )


def _check_positive(section: Dict[str, Any], key: str, prefix: str) -> None:
    if key in section:
        value = section[key]
        if not isinstance(value, (int, float)) or value <= 0:
            raise ConfigValidationError(
                f"'{prefix}.{key}' must be a positive number, got: {value}"
            )


def _validate_ripple_config(config: Dict[str, Any]) -> None:
    """
    Validate ripple mode configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    ripple = config.get('ripple', {})
    if not isinstance(ripple, dict):
        raise ConfigValidationError("'ripple' must be a dictionary")

    if 'order' in config['input']:
        order_path = Path(config['input']['order'])
        if not order_path.exists():
            raise ConfigValidationError(f"Order file not found: {order_path}")

    _check_int(ripple, 'window_size', 'ripple', minimum=2)
    _check_int(ripple, 'workers', 'ripple')
    _check_int(ripple, 'phase_workers', 'ripple')
    _check_int(ripple, 'n', 'ripple')
    _check_int(ripple, 'passes', 'ripple')
    _check_int(ripple, 'batch_size', 'ripple', minimum=2)
    _check_int(ripple, 'batch_overlap', 'ripple', minimum=0)
    _check_int(ripple, 'start', 'ripple', minimum=0)
    _check_positive(ripple, 'tolerance', 'ripple')

    checks = [
        ('strategy', STRATEGIES),
        ('preference', PREFERENCES),
        ('objective', OBJECTIVES),
    ]
    for key, allowed in checks:
        if key in ripple and ripple[key] not in allowed:
            raise ConfigValidationError(
                f"Invalid ripple.{key}: '{ripple[key]}'. Must be one of {list(allowed)}"
            )

    if 'no_reverse' in ripple and not isinstance(ripple['no_reverse'], bool):
        raise ConfigValidationError("'ripple.no_reverse' must be a boolean")


def _validate_order_config(config: Dict[str, Any]) -> None:
    """
    Validate order mode configuration.

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    order = config.get('order', {})
    if not isinstance(order, dict):
        raise ConfigValidationError("'order' must be a dictionary")

    _check_int(order, 'seed_size', 'order', minimum=2)
    _check_positive(order, 'threshold', 'order')
    _check_positive(order, 'tolerance', 'order')
    _check_positive(order, 'final_tolerance', 'order')

    touchdown = order.get('touchdown', False)
    if not isinstance(touchdown, bool):
        raise ConfigValidationError("'order.touchdown' must be a boolean")

    if touchdown and order.get('threshold', 3.0) <= 1:
        raise ConfigValidationError("'order.threshold' must be greater than 1 with touchdown")


def run_from_config(config_path: str) -> None:
    """
    Load run configuration and execute appropriate mode.

    This is the main entry point called by order_cli.py.

    Args:
        config_path: Path to run configuration YAML file

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigValidationError: If config is invalid
        Various exceptions from mode implementations
    """
    print(f"Loading configuration from: {config_path}")
    config = load_run_config(config_path)

    print(f"Validating configuration...")
    validate_run_config(config)

    mode = config['mode']
    print(f"Mode: {mode}\n")

    if mode == 'ripple':
        from .orchestration import run_ripple_mode
        run_ripple_mode(config)
    elif mode == 'order':
        from .orchestration import run_order_mode
        run_order_mode(config)
    else:
        # Should never reach here due to validation
        raise ConfigValidationError(f"Invalid mode: {mode}")

    print("\nRun completed successfully!")
