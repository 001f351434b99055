from __future__ import annotations

from typing import Iterable

from sqlalchemy import false, or_, true


GLOBAL_SCOPE_PATH = "/"


def scope_path_predicate(model, prefixes: Iterable[str]) -> object:
    # Match rows at any of the given scopes or beneath them; ids are escaped for LIKE.
    unique = sorted(set(prefixes))
    if GLOBAL_SCOPE_PATH in unique:
        return true()
    if not unique:
        return false()
    return or_(*[model.scope_path.startswith(prefix, autoescape=True) for prefix in unique])
