import threading
from typing import Callable, Dict, List, Optional

Listener = Callable[[str, Optional[str]], None]


class SharedStorage:
    """Key/value area shared by every tab of one browser profile.

    A write through one tab's view is delivered to the listeners of every
    other view, never to the writer, the way browser storage events are.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._views: List['TabStorage'] = []

    def view(self, tab_id: str) -> 'TabStorage':
        tab = TabStorage(self, tab_id)
        with self._lock:
            self._views.append(tab)
        return tab

    def detach(self, tab: 'TabStorage') -> None:
        with self._lock:
            if tab in self._views:
                self._views.remove(tab)

    def _write(self, origin: 'TabStorage', key: str, value: Optional[str]) -> None:
        with self._lock:
            if value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = value
            others = [v for v in self._views if v is not origin]
        for tab in others:
            tab._notify(key, value)

    def _read(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)


class TabStorage:
    def __init__(self, area: SharedStorage, tab_id: str):
        self.area = area
        self.tab_id = tab_id
        self._listeners: List[Listener] = []

    def get(self, key: str) -> Optional[str]:
        return self.area._read(key)

    def set(self, key: str, value: str) -> None:
        self.area._write(self, key, value)

    def remove(self, key: str) -> None:
        self.area._write(self, key, None)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def close(self) -> None:
        self._listeners.clear()
        self.area.detach(self)

    def _notify(self, key: str, value: Optional[str]) -> None:
        for listener in list(self._listeners):
            listener(key, value)
