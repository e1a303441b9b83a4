"""
State Store - Key/value persistence for pick history and attribution data

Every collaborator that keeps state between runs goes through the
``StateStore`` interface (``get``/``put``/``update``), so the pipeline never
touches a file or database directly. Values must be JSON-serializable.
"""

import asyncio
import copy
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from miyomi.core.logging import LoggerMixin


class StateStore(LoggerMixin, ABC):
    """Async key/value store."""
    
    def __init__(self):
        self._lock_instance: Optional[asyncio.Lock] = None
    
    @property
    def _lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._lock_instance is None:
            self._lock_instance = asyncio.Lock()
        return self._lock_instance
    
    @abstractmethod
    async def _read(self) -> Dict[str, Any]:
        """Return the full state mapping."""
        pass
    
    @abstractmethod
    async def _write(self, state: Dict[str, Any]) -> None:
        """Persist the full state mapping."""
        pass
    
    async def get(self, key: str, default: Any = None) -> Any:
        """Get a copy of the value stored under ``key``."""
        async with self._lock:
            state = await self._read()
            if key not in state:
                return default
            return copy.deepcopy(state[key])
    
    async def put(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        async with self._lock:
            state = await self._read()
            state[key] = copy.deepcopy(value)
            await self._write(state)
    
    async def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """
        Atomically replace the value under ``key`` with ``fn(current)``.
        
        ``current`` is ``default`` when the key is missing. Returns the new value.
        """
        async with self._lock:
            state = await self._read()
            current = copy.deepcopy(state.get(key, default))
            new_value = fn(current)
            state[key] = copy.deepcopy(new_value)
            await self._write(state)
            return new_value
    
    async def delete(self, key: str) -> bool:
        async with self._lock:
            state = await self._read()
            if key not in state:
                return False
            del state[key]
            await self._write(state)
            return True
    
    async def keys(self) -> List[str]:
        async with self._lock:
            return list((await self._read()).keys())


class MemoryStateStore(StateStore):
    """In-process store; state is lost on exit."""
    
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._state: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
    
    async def _read(self) -> Dict[str, Any]:
        return self._state
    
    async def _write(self, state: Dict[str, Any]) -> None:
        self._state = state


class JsonFileStateStore(StateStore):
    """
    Store backed by a single JSON document on disk.
    
    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written state file. A missing file reads as empty state; a
    corrupt one is logged and also reads as empty state.
    """
    
    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
    
    async def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error("Failed to load state file", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            self.logger.error("State file is not a JSON object", path=str(self.path))
            return {}
        return data
    
    async def _write(self, state: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2, default=str)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self.logger.debug("State saved", path=str(self.path), keys=len(state))
