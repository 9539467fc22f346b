from __future__ import annotations
import os
from pathlib import Path
from typing import Iterable, List


def _sep() -> str:
    return ';' if os.name == 'nt' else ':'


# Resolve installation dir (conch package directory)
_CONCH_DIR = Path(__file__).resolve().parent

# Defaults
_DEFAULT_PRELUDE = _CONCH_DIR / 'prelude' / 'boot.conch'
_TRUTHY = ('1', 'true', 'yes', 'on')


def paths_from_env(var: str, defaults: Iterable[Path]) -> List[Path]:
    raw = os.environ.get(var)
    if not raw:
        return [Path(p) for p in defaults]
    sep = _sep()
    return [Path(p.strip()) for p in raw.split(sep) if p.strip()]


def get_prelude_paths() -> List[Path]:
    """Prelude scripts in load order; a directory contributes its *.conch files."""
    scripts: List[Path] = []
    for p in paths_from_env('CONCH_PRELUDE_PATH', [_DEFAULT_PRELUDE]):
        if p.is_dir():
            scripts.extend(sorted(p.glob('*.conch')))
        elif p.is_file():
            scripts.append(p)
    return scripts


def strict_from_env() -> bool:
    return os.environ.get('CONCH_STRICT', '').strip().lower() in _TRUTHY


def log_level_from_env(default: str = 'WARNING') -> str:
    return os.environ.get('CONCH_LOG_LEVEL', default).strip().upper() or default
