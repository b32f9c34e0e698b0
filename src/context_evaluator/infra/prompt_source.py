from __future__ import annotations

from importlib import resources
from pathlib import Path

from ..core.domain.exceptions import PromptNotFoundError


PROMPT_SUFFIX = ".md"


class PackagePromptSource:
    """Prompt templates shipped inside the ``context_evaluator`` package."""

    def __init__(self, package: str = "context_evaluator", directory: str = "prompts") -> None:
        self._root = resources.files(package).joinpath(directory)
        self._cache: dict[str, str] = {}

    def _resource(self, name: str):
        resource = self._root
        for part in f"{name}{PROMPT_SUFFIX}".split("/"):
            resource = resource.joinpath(part)
        return resource

    def exists(self, name: str) -> bool:
        return name in self._cache or self._resource(name).is_file()

    def get(self, name: str) -> str:
        if name not in self._cache:
            resource = self._resource(name)
            if not resource.is_file():
                raise PromptNotFoundError(name, "package resources")
            self._cache[name] = resource.read_text(encoding="utf-8")
        return self._cache[name]


class DirectoryPromptSource:
    """Prompt templates read from a directory on disk (``<dir>/<name>.md``)."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self._directory / f"{name}{PROMPT_SUFFIX}"

    def exists(self, name: str) -> bool:
        return self._path(name).is_file()

    def get(self, name: str) -> str:
        path = self._path(name)
        if not path.is_file():
            raise PromptNotFoundError(name, str(self._directory))
        return path.read_text(encoding="utf-8")


def build_prompt_source(directory: Path | None = None) -> PackagePromptSource | DirectoryPromptSource:
    """Directory override when configured, packaged templates otherwise."""
    if directory is not None:
        return DirectoryPromptSource(directory)
    return PackagePromptSource()
