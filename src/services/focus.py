"""
Focus hand-off
Remembers which submission's discussion to open after the principal follows
a notification; the value is consumed the first time that submission is
actually present in the list being shown.
"""
import threading
from typing import Dict, Iterable, Optional

FOCUS_KEY = "focus_submission_id"


class FocusStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._values: Dict[str, Dict[str, str]] = {}

    def remember(self, uid: str, submission_id: str) -> None:
        with self._lock:
            self._values.setdefault(uid, {})[FOCUS_KEY] = submission_id

    def peek(self, uid: str) -> Optional[str]:
        with self._lock:
            return self._values.get(uid, {}).get(FOCUS_KEY)

    def consume(self, uid: str, available_ids: Iterable[str]) -> Optional[str]:
        """Return and clear the remembered id if it is among available_ids"""
        with self._lock:
            value = self._values.get(uid, {}).get(FOCUS_KEY)
            if value is None or value not in set(available_ids):
                return None
            del self._values[uid][FOCUS_KEY]
            return value

    def clear(self, uid: str) -> None:
        with self._lock:
            self._values.pop(uid, None)


focus_store = FocusStore()
