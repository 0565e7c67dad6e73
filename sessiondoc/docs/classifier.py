"""Bounded sentence classification through the completion service."""

from __future__ import annotations

import json
import re
from typing import Dict, Optional, Sequence

from ..llm.runner import LLMRunner
from ..logging import get_logger
from ..prompting.builder import PromptBuilder
from .semantic import FactCategory

_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


class SentenceClassifier:
    """Labels ambiguous sentences with one batched call.

    Only labels are read back from the response; the sentences themselves are
    never replaced by model text.
    """

    def __init__(
        self,
        runner: LLMRunner,
        *,
        max_items: int = 20,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        self.runner = runner
        self.max_items = max_items
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.logger = get_logger("classifier")

    def classify(self, texts: Sequence[str]) -> Dict[int, FactCategory]:
        """Return ``{index: category}`` for the sentences the service labelled.

        Raises ``RuntimeError`` (``LLMError`` included) when the call fails.
        """
        batch = list(texts[: self.max_items])
        if not batch:
            return {}
        prompt = self.prompt_builder.build_classifier_prompt(batch)
        response = self.runner.run(prompt.user, system=prompt.system)
        labels = self.parse(response, len(batch))
        self.logger.info("Classifier labelled %d of %d sentences", len(labels), len(batch))
        return labels

    def parse(self, response: str, count: int) -> Dict[int, FactCategory]:
        match = _ARRAY_PATTERN.search(response or "")
        if match is None:
            self.logger.warning("Classifier response contained no JSON array; ignoring it")
            return {}
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError:
            self.logger.warning("Classifier response was not valid JSON; ignoring it")
            return {}
        if not isinstance(payload, list):
            return {}

        labels: Dict[int, FactCategory] = {}
        for item in payload:
            if not isinstance(item, dict):
                continue
            index = item.get("index")
            if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < count:
                continue
            try:
                category = FactCategory(str(item.get("category", "")).strip().lower())
            except ValueError:
                continue
            labels.setdefault(index, category)
        return labels


__all__ = ["SentenceClassifier"]
