"""Loading of ``.env`` files for the service and the CLI."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

from dotenv import find_dotenv, load_dotenv

PathLike = Union[str, Path]
ENV_FILE_VARIABLE = "ERD_ENV_FILE"
_LOADED = False


def _candidates(extra_paths: Optional[Iterable[PathLike]]) -> List[Path]:
    paths: List[Path] = [Path(p).expanduser() for p in extra_paths or ()]
    explicit = os.getenv(ENV_FILE_VARIABLE)
    if explicit:
        paths.append(Path(explicit).expanduser())
    found = find_dotenv(usecwd=True)
    if found:
        paths.append(Path(found))
    paths.append(Path(__file__).resolve().parent.parent / ".env")
    return paths


def load_env(*, override: bool = False, extra_paths: Iterable[PathLike] | None = None) -> bool:
    """Load environment variables from the first-found ``.env`` files.

    Order: ``extra_paths``, the file named by ``ERD_ENV_FILE``, the nearest
    ``.env`` above the working directory, then the repository root. Each file
    is read at most once. Returns ``True`` if any file set a variable.
    """

    global _LOADED

    if _LOADED and not override and extra_paths is None:
        return True

    seen: set[Path] = set()
    loaded_any = False
    for path in _candidates(extra_paths):
        if not path.is_file():
            continue
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        loaded_any = load_dotenv(resolved, override=override) or loaded_any

    if not override:
        _LOADED = True
    return loaded_any
