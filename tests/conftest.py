import json
import socket
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from config import SpotifyConfig


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=None):
        self.status_code = status_code
        self._json = json_data
        if content is None:
            content = b'' if json_data is None else json.dumps(json_data).encode('utf-8')
        self.content = content

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Stand-in for requests.Session that replays queued responses."""

    def __init__(self, get_responses=None, post_responses=None, post_delay=0.0):
        self.get_responses = list(get_responses or [])
        self.post_responses = list(post_responses or [])
        self.post_delay = post_delay
        self.get_calls = []
        self.post_calls = []
        self._lock = threading.Lock()
        self.closed = False

    def _next(self, queue):
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, headers=None, timeout=None, **kwargs):
        with self._lock:
            self.get_calls.append({'url': url, 'headers': dict(headers or {})})
            return self._next(self.get_responses)

    def post(self, url, data=None, timeout=None, **kwargs):
        with self._lock:
            self.post_calls.append({'url': url, 'data': dict(data or {})})
        if self.post_delay:
            time.sleep(self.post_delay)
        with self._lock:
            return self._next(self.post_responses)

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def token_response(access='new-access', refresh=None, expires_in=3600, status_code=200):
    body = {'access_token': access, 'token_type': 'Bearer', 'expires_in': expires_in}
    if refresh is not None:
        body['refresh_token'] = refresh
    return FakeResponse(status_code, body)


@pytest.fixture
def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def spotify_config(tmp_path, free_port):
    return SpotifyConfig(
        client_id='client-123',
        redirect_uri=f'http://127.0.0.1:{free_port}',
        token_storage_path=tmp_path / 'tokens.json',
        auth_timeout=0.5,
        request_timeout=1.0
    )


@pytest.fixture
def clock():
    return FakeClock()
