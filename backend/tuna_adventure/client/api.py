from typing import Any, Callable, Dict, Optional, Tuple

# transport(method, path, json_body) -> (status_code, json_body); raises
# ConnectionError (or OSError) when the server cannot be reached.
Transport = Callable[[str, str, Optional[Dict[str, Any]]], Tuple[int, Any]]


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status


class OfflineError(ApiError):
    def __init__(self, message: str = 'Server unreachable'):
        super().__init__(0, message)


def flask_transport(client, prefix: str = '') -> Transport:
    """Adapt a Flask test client (or anything with `.open`) to a transport."""
    def send(method, path, body=None):
        response = client.open(prefix + path, method=method, json=body)
        return response.status_code, response.get_json(silent=True)
    return send


class GameApi:
    def __init__(self, transport: Transport):
        self.transport = transport

    def _call(self, method: str, path: str, body: Optional[Dict[str, Any]] = None):
        try:
            status, data = self.transport(method, path, body)
        except (ConnectionError, OSError) as exc:
            raise OfflineError(str(exc) or 'Server unreachable') from exc
        if status >= 400:
            message = (data or {}).get('error') if isinstance(data, dict) else None
            raise ApiError(status, message or f'HTTP {status}')
        return data

    def login(self, team_name: str, password: str):
        return self._call('POST', '/api/auth/login', {'teamName': team_name, 'password': password})

    def status(self) -> Dict[str, Any]:
        return self._call('GET', '/api/game/status')

    def submit_decision(self, position: int, decision: str, rationale: str) -> Dict[str, Any]:
        return self._call('POST', '/api/game/decisions', {
            'position': position,
            'decision': decision,
            'rationale': rationale,
        })

    def get_decision(self, position: int) -> Dict[str, Any]:
        return self._call('GET', f'/api/game/decisions/{position}')

    def scenario(self, position: int) -> Dict[str, Any]:
        return self._call('GET', f'/api/game/scenarios/{position}')

    def leaderboard(self):
        return self._call('GET', '/api/game/leaderboard')
