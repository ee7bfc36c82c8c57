"""
Configuration manager for Trivia Bot settings and parameters.
"""
import logging
from typing import Dict, Any, List, Optional, Tuple, Union
from pathlib import Path
import os

from .models import TriviaSettings

Number = Union[int, float]


class ConfigManager:
    """Manages question supply and game settings."""

    # Validation limits, (minimum, maximum)
    CACHE_SIZE_RANGE = (1, 50)
    MAX_QUESTIONS_RANGE = (1, 100)
    FETCH_ATTEMPTS_RANGE = (1, 10)
    BACKOFF_BASE_RANGE = (0.0, 60.0)
    COOLDOWN_RANGE = (0.0, 3600.0)
    REQUEST_TIMEOUT_RANGE = (0.5, 60.0)

    VALID_QUESTION_TYPES = ("multiple",)

    def __init__(self, settings: Optional[TriviaSettings] = None):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = settings or TriviaSettings()

    def get_trivia_settings(self) -> TriviaSettings:
        """
        Get a copy of the current settings.

        Returns:
            TriviaSettings object with current configuration
        """
        return TriviaSettings(**vars(self._settings))

    def _set_number(
        self,
        attribute: str,
        label: str,
        value: Any,
        bounds: Tuple[Number, Number],
        integer: bool = True
    ) -> Dict[str, any]:
        """
        Validate and store a numeric setting.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        minimum, maximum = bounds
        expected = (int,) if integer else (int, float)

        # bool is an int subclass but never a valid number here
        if isinstance(value, bool) or not isinstance(value, expected):
            error_msg = f"{label} must be {'an integer' if integer else 'a number'}, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too small: Minimum is {minimum}"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} too large: Maximum is {maximum}"
            }

        setattr(self._settings, attribute, value)
        self.logger.info(f"{label} set to {value}")
        return {
            'success': True,
            'message': f"{label} set to {value}",
            'user_message': f"✅ {label} set to {value}"
        }

    def set_cache_size(self, size: int) -> Dict[str, any]:
        return self._set_number('cache_size', "Cache size", size, self.CACHE_SIZE_RANGE)

    def set_max_questions(self, count: int) -> Dict[str, any]:
        return self._set_number('max_questions', "Questions per game", count, self.MAX_QUESTIONS_RANGE)

    def set_max_fetch_attempts(self, attempts: int) -> Dict[str, any]:
        return self._set_number('max_fetch_attempts', "Fetch attempts", attempts, self.FETCH_ATTEMPTS_RANGE)

    def set_backoff_base(self, seconds: float) -> Dict[str, any]:
        return self._set_number(
            'backoff_base_seconds', "Backoff base", seconds, self.BACKOFF_BASE_RANGE, integer=False
        )

    def set_cooldown(self, seconds: float) -> Dict[str, any]:
        return self._set_number(
            'cooldown_seconds', "Cooldown", seconds, self.COOLDOWN_RANGE, integer=False
        )

    def set_request_timeout(self, seconds: float) -> Dict[str, any]:
        return self._set_number(
            'request_timeout_seconds', "Request timeout", seconds, self.REQUEST_TIMEOUT_RANGE, integer=False
        )

    def set_question_type(self, question_type: str) -> Dict[str, any]:
        """
        Set the question type requested from the provider.

        Only multiple choice is supported, since every served question
        carries four answers.
        """
        if question_type not in self.VALID_QUESTION_TYPES:
            error_msg = f"Unsupported question type: {question_type}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Only {', '.join(self.VALID_QUESTION_TYPES)} questions are supported"
            }
        self._settings.question_type = question_type
        return {
            'success': True,
            'message': f"Question type set to {question_type}",
            'user_message': f"✅ Question type set to {question_type}"
        }

    def set_dataset_path(self, path: str) -> Dict[str, any]:
        """
        Set the path of the local CSV dataset with validation.

        Args:
            path: Path to the CSV file

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(path, str):
            error_msg = f"Dataset path must be a string, got {type(path).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(path).__name__}"
            }

        if not path.strip():
            error_msg = "Dataset path cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Dataset path cannot be empty"
            }

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid dataset path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        self._settings.dataset_path = normalized_path
        self.logger.info(f"Dataset path set to {normalized_path}")
        return {
            'success': True,
            'message': f"Dataset path set to {normalized_path}",
            'user_message': f"✅ Dataset path set to {normalized_path}"
        }

    def apply_config(self, trivia_config: Dict[str, Any]) -> List[str]:
        """
        Apply a 'trivia' section from config.json.

        Invalid values are skipped and the defaults kept.

        Returns:
            List of error messages for skipped values
        """
        setters = {
            'cache_size': self.set_cache_size,
            'max_questions': self.set_max_questions,
            'max_fetch_attempts': self.set_max_fetch_attempts,
            'backoff_base_seconds': self.set_backoff_base,
            'cooldown_seconds': self.set_cooldown,
            'request_timeout_seconds': self.set_request_timeout,
            'question_type': self.set_question_type,
            'dataset_path': self.set_dataset_path,
        }
        errors = []

        for key, value in (trivia_config or {}).items():
            if key == 'provider_url':
                self._settings.provider_url = str(value)
                continue
            if key == 'category':
                result = self._set_number('category', "Category", value, (9, 32))
            elif key in setters:
                result = setters[key](value)
            else:
                self.logger.warning(f"Ignoring unknown trivia setting: {key}")
                continue
            if not result['success']:
                errors.append(f"{key}: {result['error']}")

        if errors:
            self.logger.warning(f"Skipped {len(errors)} invalid trivia settings")
        return errors

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        checks = [
            ('cache_size', self.CACHE_SIZE_RANGE),
            ('max_questions', self.MAX_QUESTIONS_RANGE),
            ('max_fetch_attempts', self.FETCH_ATTEMPTS_RANGE),
            ('backoff_base_seconds', self.BACKOFF_BASE_RANGE),
            ('cooldown_seconds', self.COOLDOWN_RANGE),
            ('request_timeout_seconds', self.REQUEST_TIMEOUT_RANGE),
        ]
        for attribute, (minimum, maximum) in checks:
            value = getattr(self._settings, attribute)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not minimum <= value <= maximum:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {attribute}: {value}")

        if self._settings.question_type not in self.VALID_QUESTION_TYPES:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question_type: {self._settings.question_type}")

        if not isinstance(self._settings.dataset_path, str) or not self._settings.dataset_path.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid dataset_path: {self._settings.dataset_path}")

        return validation_result

    def get_configuration_health_check(self) -> Dict[str, any]:
        """
        Check the configuration and the dataset it points at.

        Returns:
            Dictionary with health status and recommendations
        """
        health_check = {
            'healthy': True,
            'warnings': [],
            'errors': [],
            'recommendations': []
        }

        validation_result = self.validate_settings()
        if not validation_result['valid']:
            health_check['healthy'] = False
            health_check['errors'].extend(f"❌ {issue}" for issue in validation_result['issues'])

        dataset = Path(self._settings.dataset_path)
        if not dataset.exists():
            health_check['warnings'].append(f"⚠️ Dataset does not exist: {dataset}")
            health_check['recommendations'].append(
                "CSV mode will have no questions until the dataset is provided."
            )
        elif not os.access(dataset, os.R_OK):
            health_check['healthy'] = False
            health_check['errors'].append(f"❌ Cannot read dataset: {dataset}")

        if self._settings.cooldown_seconds < 5:
            health_check['warnings'].append(
                f"⚠️ Short cooldown ({self._settings.cooldown_seconds}s) may keep the API rate limited"
            )

        return health_check

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        s = self._settings
        return (
            f"Trivia Settings:\n"
            f"• Questions per game: {s.max_questions}\n"
            f"• API cache size: {s.cache_size}\n"
            f"• Fetch attempts: {s.max_fetch_attempts} (backoff base {s.backoff_base_seconds:g}s)\n"
            f"• Cooldown: {s.cooldown_seconds:g} seconds\n"
            f"• Request timeout: {s.request_timeout_seconds:g} seconds\n"
            f"• Dataset: {s.dataset_path}"
        )
