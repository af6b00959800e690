"""
Append-only audit log of availability checks (one JSON object per line).
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from models import Location


class AvailabilityLog:
    def __init__(self, storage_path) -> None:
        self.storage_path = Path(storage_path)
        self._lock = threading.Lock()

    def record(
        self,
        contact: str,
        location_label: str,
        location: Location,
        available: bool,
        requested: bool = False,
    ) -> Dict[str, Any]:
        entry = {
            "contact": contact,
            "location": location_label,
            "lat": location.lat,
            "lng": location.lng,
            "requested": requested,
            "status": "AVAILABLE" if available else "UNAVAILABLE",
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self.storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        return entry

    def recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Newest first."""
        with self._lock:
            try:
                with self.storage_path.open("r", encoding="utf-8") as f:
                    lines = f.readlines()
            except FileNotFoundError:
                return []
        entries = []
        for line in reversed(lines):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
            if len(entries) >= limit:
                break
        return entries
