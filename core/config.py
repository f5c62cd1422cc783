"""
Configuration Management Module

This module provides a centralized way to load and access configuration settings
from the config.yaml file. It uses the Singleton pattern to ensure only one
configuration instance exists throughout the application.

Raw sections are plain dicts. The typed views (DetectorConfig, MatchingConfig,
TrainingConfig, ApiConfig) give every setting a name, a type and a default, so
a missing key in config.yaml falls back to a sensible value.

Usage:
    from core.config import get_config, get_matching_config
    config = get_config()
    matching = get_matching_config()
    print(matching.threshold)
"""

import os
import logging
import yaml
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional


logger = logging.getLogger(__name__)

# Environment variable that points at an alternative config file
CONFIG_ENV_VAR = "FACEREG_CONFIG"

# Store the singleton instance (module-level variable)
_config_instance: Optional[Dict[str, Any]] = None


# ============================================================
# Typed configuration sections
# ============================================================

@dataclass
class DetectorConfig:
    """
    Face detector / descriptor extractor settings.

    Attributes:
        variant: "insightface", "facenet", "simulated", or "auto"
                 (first installed model backend).
        score_threshold: Minimum detection confidence for a face to be kept.
        input_size: Detector input resolution in pixels (square).
        model: Model bundle name (insightface: "buffalo_l", "buffalo_sc";
               facenet: "vggface2", "casia-webface").
        device: "cuda" or "cpu".
        embedding_dim: Descriptor length produced by the detector.
        seed: Random seed for the simulated detector (None = nondeterministic).
        preload: Load models at startup instead of on first request.
    """

    variant: str = "auto"
    score_threshold: float = 0.5
    input_size: int = 640
    model: str = "buffalo_l"
    device: str = "cpu"
    embedding_dim: int = 512
    seed: Optional[int] = None
    preload: bool = True


@dataclass
class MatchingConfig:
    """
    Matcher settings.

    Attributes:
        threshold: Distances strictly below this are matches. 0.6 suits
                   normalized real-model descriptors; the simulated detector
                   needs 1.0.
        metric: "euclidean" or "cosine".
        confidence: "normalized" (100 * (1 - d)) or "linear" (100 - 50 * d).
    """

    threshold: float = 0.6
    metric: str = "euclidean"
    confidence: str = "normalized"


@dataclass
class TrainingConfig:
    """Timed training session settings."""

    duration_sec: float = 3.0


@dataclass
class ApiConfig:
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = 3001
    max_upload_mb: float = 10.0
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)


def _from_section(cls, section: Optional[Dict[str, Any]]):
    """
    Build a config dataclass from a raw YAML section.

    Unknown keys are ignored with a warning so that a typo never crashes
    startup, and missing keys keep their defaults.
    """
    section = section or {}
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in section.items() if k in known})


# ============================================================
# Loading
# ============================================================

def get_project_root() -> Path:
    """
    Find the project root directory.

    The project root is identified by the presence of config.yaml file.
    This function walks up the directory tree from this file's location
    until it finds config.yaml.

    Returns:
        Path: The absolute path to the project root directory.

    Raises:
        FileNotFoundError: If config.yaml cannot be found in any parent directory.
    """
    # Start from the directory containing this file
    current_dir = Path(__file__).resolve().parent

    # Walk up the directory tree to find config.yaml
    while current_dir != current_dir.parent:
        config_path = current_dir / "config.yaml"
        if config_path.exists():
            return current_dir
        current_dir = current_dir.parent

    # If we reach here, config.yaml was not found
    raise FileNotFoundError(
        "Could not find config.yaml in any parent directory. "
        "Make sure you're running from within the project directory."
    )


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Optional path to the config file.
                     If not provided, uses $FACEREG_CONFIG, then the
                     config.yaml in the project root.

    Returns:
        Dict containing all configuration values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_ENV_VAR)

    if config_path is None:
        project_root = get_project_root()
        config_path = project_root / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    logger.debug(f"Loaded configuration from {config_path}")
    return config or {}


def get_config(reload: bool = False) -> Dict[str, Any]:
    """
    Get the configuration singleton.

    If no config file can be found, an empty configuration is used and every
    typed section falls back to its defaults.

    Args:
        reload: If True, forces reloading the configuration from disk.
                Useful for testing or if the config file has changed.

    Returns:
        Dict containing all configuration values.
    """
    global _config_instance

    if _config_instance is None or reload:
        try:
            _config_instance = load_config()
        except FileNotFoundError as e:
            logger.warning(f"{e} Using built-in defaults.")
            _config_instance = {}

    return _config_instance


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Get a specific section from the configuration.

    Args:
        section_name: Name of the configuration section
                      (e.g., "detector", "matching", "api")

    Returns:
        Dict containing the section's configuration values.

    Raises:
        KeyError: If the section doesn't exist in the configuration.
    """
    config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


# Typed accessors for each configuration section
def get_detector_config(config: Optional[Dict[str, Any]] = None) -> DetectorConfig:
    """Get face detector configuration."""
    config = get_config() if config is None else config
    return _from_section(DetectorConfig, config.get("detector"))


def get_matching_config(config: Optional[Dict[str, Any]] = None) -> MatchingConfig:
    """Get matching configuration."""
    config = get_config() if config is None else config
    return _from_section(MatchingConfig, config.get("matching"))


def get_training_config(config: Optional[Dict[str, Any]] = None) -> TrainingConfig:
    """Get training session configuration."""
    config = get_config() if config is None else config
    return _from_section(TrainingConfig, config.get("training"))


def get_api_config(config: Optional[Dict[str, Any]] = None) -> ApiConfig:
    """Get API server configuration."""
    config = get_config() if config is None else config
    return _from_section(ApiConfig, config.get("api"))
