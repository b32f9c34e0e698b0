from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..domain.events import ProgressCallback
from ..domain.models import EvaluationOptions, EvaluationOutput
from ..services import EvaluationEngine


class EvaluateUseCase:
    """Use case for evaluating a repository's context files.

    Thin layer over EvaluationEngine; runtime options come in here, wiring
    comes from the container.
    """

    def __init__(self, *, engine: EvaluationEngine) -> None:
        self._engine = engine

    async def execute(
        self,
        *,
        repo_path: Path | str,
        options: Optional[EvaluationOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EvaluationOutput:
        """Execute the evaluation workflow.

        Args:
            repo_path: Local repository directory
            options: Mode/evaluator overrides for this run
            on_progress: Optional callback receiving progress events

        Returns:
            Evaluation output
        """
        return await self._engine.evaluate(repo_path, options=options, on_progress=on_progress)
