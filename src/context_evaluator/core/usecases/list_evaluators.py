from __future__ import annotations

from ..domain.evaluators import EvaluatorFilter, EvaluatorSpec, select_evaluators


class ListEvaluatorsUseCase:
    """Use case for listing the evaluator catalog."""

    def execute(self, *, evaluator_filter: EvaluatorFilter = "all") -> list[EvaluatorSpec]:
        return select_evaluators(evaluator_filter)
