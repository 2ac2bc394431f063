"""
Read-only content catalog: module list with question counts and answer keys.

Question text and rendering live outside the sync engine; the catalog is only
used for bounds checks, answer checking and question ordering.
"""

import json
import random
from pathlib import Path
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from progress_sync.utils.logger import configure_logging

logger = configure_logging()


class CatalogModule(BaseModel):
    title: str
    answers: list[int] = Field(default_factory=list)  # correct option per question, original order

    @property
    def question_count(self) -> int:
        return len(self.answers)


class ContentCatalog(BaseModel):
    title: str = ""
    modules: list[CatalogModule]

    @classmethod
    def load(cls, path: Path | str) -> "ContentCatalog":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        catalog = cls.model_validate(data)
        logger.info("catalog loaded path=%s modules=%s", path, catalog.module_count)
        return catalog

    @classmethod
    def from_counts(cls, counts: Sequence[int], title: str = "") -> "ContentCatalog":
        """Catalog whose correct answer is always option 0 (tests, fixtures)."""
        return cls(
            title=title,
            modules=[CatalogModule(title=f"Module {i + 1}", answers=[0] * n) for i, n in enumerate(counts)],
        )

    @property
    def module_count(self) -> int:
        return len(self.modules)

    def has_module(self, module: int) -> bool:
        return 0 <= module < len(self.modules)

    def question_count(self, module: int) -> int:
        if not self.has_module(module):
            return 0
        return self.modules[module].question_count

    def has_question(self, module: int, question: int) -> bool:
        return 0 <= question < self.question_count(module)

    def is_correct(self, module: int, original_index: int, option: Optional[int]) -> bool:
        if option is None or not self.has_question(module, original_index):
            return False
        return self.modules[module].answers[original_index] == option

    def shuffled_order(self, module: int, rng: Optional[random.Random] = None) -> list[int]:
        order = list(range(self.question_count(module)))
        (rng or random).shuffle(order)
        return order

    def is_valid_order(self, module: int, order: object) -> bool:
        """A stored order must be a permutation of the module's question indices."""
        if not isinstance(order, list):
            return False
        return sorted(order) == list(range(self.question_count(module)))
