"""
Local question store backed by a CSV dataset.
"""
import csv
import os
import logging
import random
from typing import Dict, List, Optional, Tuple
from pathlib import Path

from .countries import CountryRegistry
from .errors import DatasetUnavailable
from .models import Mode, Question


class LocalQuestionStore:
    """Loads (question, answer) pairs from CSV and hands each one out at most once."""

    QUESTION_FIELD = "Question"
    ANSWER_FIELD = "Answer"

    def __init__(
        self,
        dataset_path: str = "./geography_questions.csv",
        registry: Optional[CountryRegistry] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize LocalQuestionStore with dataset path.

        Args:
            dataset_path: Path to a CSV file with Question and Answer columns
            registry: Country registry used to synthesize distractors
            rng: Random generator used for draws and shuffles
        """
        self.dataset_path = Path(dataset_path)
        self.registry = registry or CountryRegistry()
        self.logger = logging.getLogger(__name__)
        self._rng = rng or random.Random()
        self._entries: List[Tuple[str, str]] = []
        self._loaded_count = 0
        self.load_errors: List[str] = []

    def load(self) -> int:
        """
        Replace the store contents with every row of the dataset.

        A missing or unreadable dataset leaves the store empty and records
        the error; it is never raised to the caller.

        Returns:
            Number of entries loaded
        """
        self._entries = []
        self._loaded_count = 0
        self.load_errors.clear()

        try:
            self._entries = self._read_rows()
        except DatasetUnavailable as e:
            self.load_errors.append(str(e))
            self.logger.error(
                f"Local dataset unavailable: {e}",
                extra={
                    'event_type': 'dataset_unavailable',
                    'dataset_path': str(self.dataset_path)
                }
            )
            return 0

        self._loaded_count = len(self._entries)
        self.logger.info(f"Loaded {self._loaded_count} questions from CSV.")
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} dataset errors")
        return self._loaded_count

    def _read_rows(self) -> List[Tuple[str, str]]:
        """
        Parse the dataset into (question, answer) pairs.

        Raises:
            DatasetUnavailable: If the file is missing, unreadable or lacks columns
        """
        if not self.dataset_path.exists():
            raise DatasetUnavailable(f"Dataset not found: {self.dataset_path}")
        if not os.access(self.dataset_path, os.R_OK):
            raise DatasetUnavailable(f"Permission denied: Cannot read {self.dataset_path}")

        entries = []
        try:
            # utf-8-sig strips a BOM left by spreadsheet exports
            with open(self.dataset_path, 'r', encoding='utf-8-sig', newline='') as f:
                reader = csv.DictReader(f)
                fieldnames = reader.fieldnames or []
                missing = [
                    name for name in (self.QUESTION_FIELD, self.ANSWER_FIELD)
                    if name not in fieldnames
                ]
                if missing:
                    raise DatasetUnavailable(
                        f"Dataset {self.dataset_path} is missing columns: {', '.join(missing)}"
                    )

                for line_number, row in enumerate(reader, start=2):
                    question = (row.get(self.QUESTION_FIELD) or "").strip()
                    answer = (row.get(self.ANSWER_FIELD) or "").strip()
                    if not question or not answer:
                        self.load_errors.append(f"Line {line_number}: missing question or answer")
                        continue
                    entries.append((question, answer))
        except csv.Error as e:
            raise DatasetUnavailable(f"Malformed CSV in {self.dataset_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise DatasetUnavailable(f"Dataset {self.dataset_path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise DatasetUnavailable(f"Failed to read dataset {self.dataset_path}: {e}") from e

        return entries

    def draw(self) -> Optional[Question]:
        """
        Remove a random unconsumed entry and turn it into a question.

        Returns:
            A MULTIPLE-kind question with three country distractors, or
            None when the store is exhausted
        """
        if not self._entries:
            return None

        index = self._rng.randrange(len(self._entries))
        text, answer = self._entries.pop(index)
        distractors = self.registry.sample_distractors(answer, 3, self._rng)

        return Question.build(text, answer, distractors, source=Mode.CSV, rng=self._rng)

    def remaining(self) -> int:
        """Number of entries not yet drawn."""
        return len(self._entries)

    def get_load_errors(self) -> List[str]:
        """
        Get list of errors encountered during the last load operation.

        Returns:
            List of error messages
        """
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, any]:
        """
        Get a summary of the last load operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'dataset_path': str(self.dataset_path),
            'loaded': self._loaded_count,
            'remaining': self.remaining(),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors()
        }
