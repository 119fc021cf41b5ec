"""Configuration loader with validation."""

import hashlib
import json
import time
from pathlib import Path
from typing import NoReturn

import structlog
import yaml
from pydantic import ValidationError

from src.config.constants import COMPONENT_CONFIG
from src.config.error_hints import format_validation_error
from src.config.schemas.pipeline import PipelineConfig
from src.config.schemas.subscribers import SubscribersFile
from src.store.models import Subscriber


logger = structlog.get_logger()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")

    def format_errors(self) -> list[str]:
        """Format each error with a remediation hint."""
        return [
            format_validation_error(err["loc"], err["msg"], err["type"])
            for err in self.errors
        ]


class ConfigLoader:
    """Loads and validates the pipeline and subscriber files.

    Each file is parsed with ``yaml.safe_load`` and validated against its
    pydantic schema. Failures of any kind (missing file, bad YAML, schema
    violations) are collected and raised as ``ConfigValidationError``.
    """

    def __init__(self) -> None:
        """Initialize the loader."""
        self._file_checksums: dict[str, str] = {}
        self._validation_errors: list[dict[str, str]] = []
        self._validation_duration_ms: float = 0
        self._log = logger.bind(component=COMPONENT_CONFIG)

    @property
    def file_checksums(self) -> dict[str, str]:
        """Get SHA-256 checksums of loaded files."""
        return self._file_checksums.copy()

    @property
    def validation_errors(self) -> list[dict[str, str]]:
        """Get validation errors if any."""
        return self._validation_errors.copy()

    @property
    def validation_duration_ms(self) -> float:
        """Get validation duration in milliseconds."""
        return self._validation_duration_ms

    def _compute_checksum(self, content: bytes) -> str:
        """Compute SHA-256 checksum of content."""
        return hashlib.sha256(content).hexdigest()

    def _load_yaml_file(self, file_path: Path) -> dict[str, object]:
        """Load a YAML file and record its checksum.

        Raises:
            ConfigValidationError: If the file is missing or not valid YAML.
        """
        try:
            content_bytes = file_path.read_bytes()
        except FileNotFoundError as e:
            self._fail(file_path, "file", str(e), "file_not_found")

        self._file_checksums[str(file_path.resolve())] = self._compute_checksum(
            content_bytes
        )

        try:
            parsed = yaml.safe_load(content_bytes.decode("utf-8"))
        except yaml.YAMLError as e:
            self._fail(file_path, "yaml", str(e), "yaml_parse_error")

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            self._fail(file_path, "yaml", "Top level must be a mapping", "dict_type")
        return parsed

    def _fail(
        self, file_path: Path, loc: str, msg: str, error_type: str
    ) -> NoReturn:
        self._validation_errors.append({"loc": loc, "msg": msg, "type": error_type})
        self._log.error(
            "config_load_failed",
            file_path=str(file_path),
            error_type=error_type,
            error=msg,
        )
        raise ConfigValidationError(self.validation_errors, str(file_path))

    def _handle_validation_error(
        self, error: ValidationError, file_path: Path
    ) -> NoReturn:
        for err in error.errors():
            self._validation_errors.append(
                {
                    "loc": ".".join(str(loc) for loc in err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                }
            )

        self._log.error(
            "config_validation_failed",
            file_path=str(file_path),
            validation_error_count=len(self._validation_errors),
            errors=self._validation_errors,
        )
        raise ConfigValidationError(self.validation_errors, str(file_path)) from error

    def load(self, path: Path) -> PipelineConfig:
        """Load and validate the pipeline configuration.

        Args:
            path: Path to pipeline.yaml.

        Returns:
            Validated PipelineConfig.

        Raises:
            ConfigValidationError: If loading or validation fails.
        """
        start_time = time.perf_counter()
        self._log.info("loading_config_file", file_path=str(path), file_type="pipeline")

        data = self._load_yaml_file(path)
        try:
            config = PipelineConfig.model_validate(data)
        except ValidationError as e:
            self._handle_validation_error(e, path)

        self._validation_duration_ms = (time.perf_counter() - start_time) * 1000
        self._log.info(
            "config_file_loaded",
            file_path=str(path),
            file_sha256=self._file_checksums.get(str(path.resolve())),
            source_count=len(config.sources),
            topic_count=len(config.topics),
            config_validation_duration_ms=self._validation_duration_ms,
        )
        return config

    def load_subscribers(self, path: Path) -> list[Subscriber]:
        """Load and validate a subscribers import file.

        Args:
            path: Path to subscribers.yaml.

        Returns:
            Validated subscriber profiles.

        Raises:
            ConfigValidationError: If loading or validation fails.
        """
        self._log.info(
            "loading_config_file", file_path=str(path), file_type="subscribers"
        )

        data = self._load_yaml_file(path)
        try:
            parsed = SubscribersFile.model_validate(data)
        except ValidationError as e:
            self._handle_validation_error(e, path)

        self._log.info(
            "config_file_loaded",
            file_path=str(path),
            subscriber_count=len(parsed.subscribers),
        )
        return parsed.subscribers

    def get_validation_summary(self) -> dict[str, object]:
        """Get a summary of the validation process."""
        return {
            "file_checksums": self._file_checksums,
            "validation_error_count": len(self._validation_errors),
            "validation_errors": self._validation_errors,
            "validation_duration_ms": self._validation_duration_ms,
        }

    def get_validation_summary_json(self) -> str:
        """Get validation summary as JSON string with stable ordering."""
        return json.dumps(self.get_validation_summary(), sort_keys=True, indent=2)
