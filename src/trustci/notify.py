from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from .model import NotifyPolicy

WHEN = ("always", "never", "change")

# ref -> whether the last run of that ref succeeded; lives beside the cache
HISTORY_FILE = "last_outcome.json"


def should_notify(policy: NotifyPolicy, succeeded: bool, previous_succeeded: Optional[bool] = None) -> bool:
    """
    Whether a finished run warrants a notification. Delivery is someone
    else's problem. With "change", an unknown previous outcome counts as a
    change.
    """
    when = policy.on_success if succeeded else policy.on_failure
    if when == "always":
        return True
    if when == "never":
        return False
    return previous_succeeded is None or previous_succeeded != succeeded


def _read_history(path: Path) -> Dict[str, bool]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k): v for k, v in data.items() if isinstance(v, bool)}


def previous_outcome(path: str | Path, ref: str) -> Optional[bool]:
    """Outcome of the last recorded run of `ref`, or None without history."""
    return _read_history(Path(path)).get(ref)


def record_outcome(path: str | Path, ref: str, succeeded: bool) -> None:
    """Remember this run's outcome for `ref` (tmp file + rename)."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    history = _read_history(p)
    history[ref] = succeeded
    tmp = p.with_name(f"{p.name}.{os.getpid()}.{threading.get_ident()}.tmp")
    tmp.write_text(json.dumps(history, sort_keys=True, indent=2), encoding="utf-8")
    tmp.replace(p)
