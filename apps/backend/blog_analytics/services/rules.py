import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Tuple

import yaml


@dataclass(frozen=True)
class FieldAlias:
    name: str
    spellings: Tuple[str, ...]


def _rules_path(filename: str) -> str:
    pkg_dir = os.path.dirname(os.path.dirname(__file__))  # blog_analytics/services -> blog_analytics
    return os.path.join(pkg_dir, "rules", filename)


def _load_yaml(filename: str) -> Dict[str, Any]:
    path = _rules_path(filename)
    if not os.path.exists(path):
        raise FileNotFoundError(f"alias table not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def fold_key(value: str) -> str:
    return value.strip().lower().replace("-", "_").replace(" ", "_")


@lru_cache(maxsize=None)
def load_field_aliases() -> Tuple[FieldAlias, ...]:
    data = _load_yaml("field_aliases.yaml")

    out: List[FieldAlias] = []
    for name, spellings in (data.get("fields") or {}).items():
        out.append(FieldAlias(name=name, spellings=tuple(str(s) for s in spellings or [])))
    return tuple(out)


@lru_cache(maxsize=None)
def load_kind_aliases() -> Dict[str, str]:
    """Flattened alias -> canonical kind lookup built from event_kinds.yaml."""
    data = _load_yaml("event_kinds.yaml")

    table: Dict[str, str] = {}
    for kind, aliases in (data.get("aliases") or {}).items():
        for alias in aliases or []:
            key = fold_key(str(alias))
            if key in table and table[key] != kind:
                raise ValueError(f"alias '{alias}' mapped to both {table[key]} and {kind}")
            table[key] = kind
    return table
