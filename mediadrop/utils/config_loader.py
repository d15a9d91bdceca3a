"""
Upload manifest loader and validator.

Loads YAML manifests describing a batch of media files to upload, with
optional per-batch compression and chunking settings.

Example manifest (manifests/party.yaml):
    ```yaml
    version: "1.0"
    workflow: upload_batch
    folder_id: 1AbCdEfGhIjK

    compression:
      enabled: true
      max_width: 1920
      quality: 80

    chunk_size_kb: 512

    uploads:
      - file: photos/cake.jpg
      - file: videos/speech.mp4
    ```

Usage:
    >>> from mediadrop.utils.config_loader import load_config, validate_config
    >>> manifest = load_config("manifests/party.yaml")
    >>> errors = validate_config(manifest)
    >>> if not errors:
    ...     print(f"Uploading {len(manifest['uploads'])} files")
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from mediadrop.utils.config import CHUNK_GRANULARITY_KB
from mediadrop.utils.logging import get_logger

logger = get_logger(__name__)


# Supported manifest versions
SUPPORTED_VERSIONS = ["1.0"]

# Valid workflow types
VALID_WORKFLOWS = ["upload_batch"]


@dataclass
class ConfigError:
    """Validation error in a manifest."""

    field: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value})"
        return f"{self.field}: {self.message}"


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a manifest from a YAML file.

    Args:
        config_path: Path to YAML manifest

    Returns:
        Dictionary containing parsed manifest

    Raises:
        FileNotFoundError: If manifest doesn't exist
        ValueError: If the path is not a file or the file is empty
        yaml.YAMLError: If YAML is malformed
    """
    path = Path(config_path)
    logger.info(f"Loading manifest from: {path}")

    if not path.exists():
        raise FileNotFoundError(f"Manifest not found: {path}")

    if not path.is_file():
        raise ValueError(f"Manifest path is not a file: {path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise

    if config is None:
        raise ValueError("Manifest file is empty")

    if not isinstance(config, dict):
        raise ValueError(f"Manifest must be a mapping, got {type(config).__name__}")

    logger.info(f"Manifest loaded: {config.get('workflow', 'unknown')}")
    return dict(config)


def validate_config(config: Dict[str, Any]) -> List[ConfigError]:
    """
    Validate a manifest against the expected schema.

    Args:
        config: Manifest dictionary to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[ConfigError] = []

    if "version" not in config:
        errors.append(ConfigError("version", "Missing required field"))
    elif config["version"] not in SUPPORTED_VERSIONS:
        errors.append(
            ConfigError(
                "version",
                f"Unsupported version (supported: {SUPPORTED_VERSIONS})",
                config["version"],
            )
        )

    if "workflow" not in config:
        errors.append(ConfigError("workflow", "Missing required field"))
    elif config["workflow"] not in VALID_WORKFLOWS:
        errors.append(
            ConfigError(
                "workflow",
                f"Invalid workflow type (valid: {VALID_WORKFLOWS})",
                config["workflow"],
            )
        )

    if "folder_id" in config and not isinstance(config["folder_id"], str):
        errors.append(
            ConfigError("folder_id", "Must be a string", type(config["folder_id"]).__name__)
        )

    if "chunk_size_kb" in config:
        chunk_kb = config["chunk_size_kb"]
        if not isinstance(chunk_kb, int) or isinstance(chunk_kb, bool):
            errors.append(
                ConfigError("chunk_size_kb", "Must be an integer", type(chunk_kb).__name__)
            )
        elif chunk_kb <= 0 or chunk_kb % CHUNK_GRANULARITY_KB:
            errors.append(
                ConfigError(
                    "chunk_size_kb",
                    f"Must be a positive multiple of {CHUNK_GRANULARITY_KB}",
                    chunk_kb,
                )
            )

    if "compression" in config:
        errors.extend(_validate_compression(config["compression"]))

    if config.get("workflow") == "upload_batch":
        errors.extend(_validate_upload_batch(config))

    if errors:
        logger.warning(f"Manifest validation failed with {len(errors)} errors")
    else:
        logger.info("Manifest validation passed")

    return errors


def _validate_compression(compression: Any) -> List[ConfigError]:
    errors: List[ConfigError] = []

    if not isinstance(compression, dict):
        errors.append(
            ConfigError("compression", "Must be a mapping", type(compression).__name__)
        )
        return errors

    if "enabled" in compression and not isinstance(compression["enabled"], bool):
        errors.append(
            ConfigError(
                "compression.enabled", "Must be a boolean", type(compression["enabled"]).__name__
            )
        )

    if "max_width" in compression:
        max_width = compression["max_width"]
        if not isinstance(max_width, int) or isinstance(max_width, bool) or max_width <= 0:
            errors.append(
                ConfigError("compression.max_width", "Must be a positive integer", max_width)
            )

    if "quality" in compression:
        quality = compression["quality"]
        if not isinstance(quality, int) or isinstance(quality, bool):
            errors.append(
                ConfigError("compression.quality", "Must be an integer", type(quality).__name__)
            )
        elif not 1 <= quality <= 95:
            errors.append(ConfigError("compression.quality", "Must be between 1 and 95", quality))

    return errors


def _validate_upload_batch(config: Dict[str, Any]) -> List[ConfigError]:
    """Validate upload_batch workflow manifest."""
    errors: List[ConfigError] = []

    if "uploads" not in config:
        errors.append(ConfigError("uploads", "Missing required field for upload_batch"))
        return errors

    uploads = config["uploads"]
    if not isinstance(uploads, list):
        errors.append(ConfigError("uploads", "Must be a list", type(uploads).__name__))
        return errors

    if len(uploads) == 0:
        errors.append(ConfigError("uploads", "Must contain at least one upload"))

    for i, upload in enumerate(uploads):
        prefix = f"uploads[{i}]"

        if not isinstance(upload, dict):
            errors.append(ConfigError(prefix, "Must be a mapping", type(upload).__name__))
            continue

        if "file" not in upload:
            errors.append(ConfigError(f"{prefix}.file", "Missing required field"))
        elif not isinstance(upload["file"], str):
            errors.append(
                ConfigError(f"{prefix}.file", "Must be a string", type(upload["file"]).__name__)
            )

    return errors


def manifest_files(config: Dict[str, Any], base_dir: Union[str, Path, None] = None) -> List[str]:
    """
    Resolve the file paths listed in a validated manifest.

    Relative paths are resolved against ``base_dir`` (usually the manifest's
    own directory).
    """
    base = Path(base_dir) if base_dir is not None else None
    files = []
    for upload in config.get("uploads", []):
        path = Path(upload["file"])
        if base is not None and not path.is_absolute():
            path = base / path
        files.append(str(path))
    return files


def get_config_examples() -> Dict[str, str]:
    """
    Get example manifest templates.

    Returns:
        Dictionary mapping example names to YAML templates
    """
    examples = {
        "upload_batch": """version: "1.0"
workflow: upload_batch

uploads:
  - file: photos/cake.jpg
  - file: photos/guests.png
  - file: videos/speech.mp4
""",
        "upload_batch_tuned": """version: "1.0"
workflow: upload_batch
folder_id: 1AbCdEfGhIjK

compression:
  enabled: true
  max_width: 1280
  quality: 70

chunk_size_kb: 1024

uploads:
  - file: videos/first_dance.mov
  - file: videos/toast.mp4
""",
    }

    return examples
