import json
import os
import shutil
import threading
from typing import Any, Dict, List, Optional

from models import RecordedStep, RecordingSession


class Storage:
    """File-based storage for recording sessions and their steps

    One JSON record per session (sessions/<id>.json) and one per step
    (steps/<session_id>/<step_id>.json). Step order lives in the
    record's step_order field and is re-derived on load.
    """

    def __init__(self, data_dir: str = "data"):
        self.data_dir = data_dir
        self.sessions_dir = os.path.join(data_dir, "sessions")
        self.steps_dir = os.path.join(data_dir, "steps")
        self._lock = threading.Lock()
        self._ensure_directories()

    def _ensure_directories(self):
        """Ensure all necessary directories exist"""
        os.makedirs(self.sessions_dir, exist_ok=True)
        os.makedirs(self.steps_dir, exist_ok=True)

    def _get_session_file(self, session_id: str) -> str:
        return os.path.join(self.sessions_dir, f"{session_id}.json")

    def _get_session_steps_dir(self, session_id: str) -> str:
        return os.path.join(self.steps_dir, session_id)

    def _get_step_file(self, session_id: str, step_id: str) -> str:
        return os.path.join(self._get_session_steps_dir(session_id), f"{step_id}.json")

    def _write_json(self, file_path: str, data: Dict[str, Any]):
        """Write a record atomically (temp file + replace)"""
        tmp_path = f"{file_path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, file_path)

    # Session operations

    def save_session(self, session: RecordingSession):
        """Save the session record (steps are stored separately)"""
        record = {
            "id": session.id,
            "test_name": session.test_name,
            "target_url": session.target_url,
            "status": session.status.value,
            "settings": session.settings.model_dump(mode='json'),
            "metadata": session.metadata.model_dump(mode='json'),
            "created_at": session.created_at.isoformat(),
            "updated_at": session.updated_at.isoformat(),
        }
        with self._lock:
            self._write_json(self._get_session_file(session.id), record)

    def get_session(self, session_id: str) -> Optional[RecordingSession]:
        """Load a session with its steps in recorded order"""
        file_path = self._get_session_file(session_id)
        if not os.path.exists(file_path):
            return None

        with open(file_path, 'r', encoding='utf-8') as f:
            record = json.load(f)

        return RecordingSession(
            id=record["id"],
            test_name=record["test_name"],
            target_url=record["target_url"],
            status=record["status"],
            settings=record.get("settings") or {},
            metadata=record.get("metadata") or {},
            created_at=record["created_at"],
            updated_at=record["updated_at"],
            steps=self.get_session_steps(session_id),
        )

    def list_session_ids(self) -> List[str]:
        return sorted(
            filename[:-5]
            for filename in os.listdir(self.sessions_dir)
            if filename.endswith('.json')
        )

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and cascade to its steps"""
        deleted = False
        with self._lock:
            file_path = self._get_session_file(session_id)
            if os.path.exists(file_path):
                os.remove(file_path)
                deleted = True
            steps_dir = self._get_session_steps_dir(session_id)
            if os.path.isdir(steps_dir):
                shutil.rmtree(steps_dir)
        return deleted

    # Step operations

    def save_step(self, session_id: str, step: RecordedStep):
        """Insert or replace one step record"""
        record = {
            "id": step.id,
            "session_id": session_id,
            "type": step.type.value,
            "selector": step.selector,
            "action_params": step.action_params,
            "description": step.description,
            "timestamp": step.timestamp.isoformat(),
            "fallback_selectors": list(step.fallback_selectors),
            "screenshot": step.screenshot,
            "metadata": step.metadata,
            "step_order": step.order_index,
        }
        with self._lock:
            os.makedirs(self._get_session_steps_dir(session_id), exist_ok=True)
            self._write_json(self._get_step_file(session_id, step.id), record)

    def get_session_steps(self, session_id: str) -> List[RecordedStep]:
        steps_dir = self._get_session_steps_dir(session_id)
        if not os.path.isdir(steps_dir):
            return []

        records = []
        for filename in os.listdir(steps_dir):
            if not filename.endswith('.json'):
                continue
            with open(os.path.join(steps_dir, filename), 'r', encoding='utf-8') as f:
                records.append(json.load(f))

        records.sort(key=lambda r: r["step_order"])
        return [
            RecordedStep(
                id=r["id"],
                type=r["type"],
                selector=r.get("selector", ""),
                action_params=r.get("action_params") or {},
                description=r.get("description", ""),
                timestamp=r["timestamp"],
                fallback_selectors=r.get("fallback_selectors") or [],
                screenshot=r.get("screenshot"),
                metadata=r.get("metadata"),
                order_index=r["step_order"],
                persisted=True,
            )
            for r in records
        ]

    def delete_step(self, session_id: str, step_id: str) -> bool:
        file_path = self._get_step_file(session_id, step_id)
        with self._lock:
            if os.path.exists(file_path):
                os.remove(file_path)
                return True
        return False
