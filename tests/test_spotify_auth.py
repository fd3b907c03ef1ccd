import base64
import hashlib
import socket
import threading
import time
import urllib.parse
from dataclasses import replace
from datetime import timedelta

import requests

from clients.auth import CredentialStore, TokenLifecycleManager
from schemas import TokenRecord

from conftest import FakeResponse, FakeSession, token_response


def make_manager(config, clock, session=None, record=None, open_browser=None):
    store = CredentialStore(config.token_storage_path)
    if record is not None:
        store.save(record)

    manager = TokenLifecycleManager(
        config,
        store=store,
        session=session or FakeSession(post_responses=[token_response()]),
        open_browser=open_browser or (lambda url: True),
        clock=clock
    )
    manager.load()
    return manager


def expiring_record(clock, seconds):
    return TokenRecord(
        access_token='old-access',
        refresh_token='old-refresh',
        expires_at=clock() + timedelta(seconds=seconds)
    )


class TestEnsureValid:

    def test_fresh_token_makes_no_network_call(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()])
        manager = make_manager(spotify_config, clock, session, expiring_record(clock, 61))

        assert manager.ensure_valid() is True
        assert session.post_calls == []

    def test_token_inside_skew_is_refreshed_once(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response(access='fresh', expires_in=3600)])
        manager = make_manager(spotify_config, clock, session, expiring_record(clock, 59))

        assert manager.ensure_valid() is True
        assert len(session.post_calls) == 1
        assert session.post_calls[0]['data'] == {
            'grant_type': 'refresh_token',
            'refresh_token': 'old-refresh',
            'client_id': 'client-123'
        }
        assert manager.access_token == 'fresh'
        assert manager.tokens.expires_at == clock() + timedelta(seconds=3600)

    def test_concurrent_callers_share_one_refresh(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()], post_delay=0.1)
        manager = make_manager(spotify_config, clock, session, expiring_record(clock, -10))

        barrier = threading.Barrier(8)
        results = []

        def call():
            barrier.wait()
            results.append(manager.ensure_valid())

        threads = [threading.Thread(target=call) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [True] * 8
        assert len(session.post_calls) == 1

    def test_signed_out_returns_false(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()])
        manager = make_manager(spotify_config, clock, session)

        assert manager.ensure_valid() is False
        assert session.post_calls == []


class TestRefresh:

    def test_missing_client_id_fails_and_keeps_record(self, spotify_config, clock):
        config = replace(spotify_config, client_id='')
        session = FakeSession(post_responses=[token_response()])
        record = expiring_record(clock, 600)
        manager = make_manager(config, clock, session, record)

        assert manager.refresh() is False
        assert manager.tokens == record
        assert session.post_calls == []

    def test_missing_refresh_token_fails(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()])
        manager = make_manager(spotify_config, clock, session)

        assert manager.refresh() is False
        assert session.post_calls == []

    def test_error_status_fails_and_keeps_record(self, spotify_config, clock):
        session = FakeSession(post_responses=[FakeResponse(400, {'error': 'invalid_grant'})])
        record = expiring_record(clock, 600)
        manager = make_manager(spotify_config, clock, session, record)

        assert manager.refresh() is False
        assert manager.tokens == record
        assert CredentialStore(spotify_config.token_storage_path).load() == record

    def test_network_error_fails(self, spotify_config, clock):
        session = FakeSession(post_responses=[requests.exceptions.ConnectionError('offline')])
        record = expiring_record(clock, 600)
        manager = make_manager(spotify_config, clock, session, record)

        assert manager.refresh() is False
        assert manager.tokens == record

    def test_refresh_token_kept_when_not_rotated(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response(access='a2')])
        manager = make_manager(spotify_config, clock, session, expiring_record(clock, 600))

        assert manager.refresh() is True
        assert manager.tokens.refresh_token == 'old-refresh'

    def test_rotated_refresh_token_is_persisted(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response(access='a2', refresh='r2', expires_in=1800)])
        manager = make_manager(spotify_config, clock, session, expiring_record(clock, 600))

        assert manager.refresh() is True

        stored = CredentialStore(spotify_config.token_storage_path).load()
        assert stored.access_token == 'a2'
        assert stored.refresh_token == 'r2'
        assert stored.expires_at == clock() + timedelta(seconds=1800)


class TestAuthenticate:

    def test_full_flow_exchanges_code_with_verifier(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response(access='acc', refresh='ref', expires_in=3600)])
        opened = []
        pages = []
        threads = []

        def browser(url):
            opened.append(url)
            params = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)

            def redirect():
                pages.append(requests.get(f"{params['redirect_uri'][0]}/?code=the-code", timeout=5))

            thread = threading.Thread(target=redirect)
            threads.append(thread)
            thread.start()
            return True

        manager = make_manager(spotify_config, clock, session, open_browser=browser)

        assert manager.authenticate('client-123') is True

        params = urllib.parse.parse_qs(urllib.parse.urlparse(opened[0]).query)
        assert params['client_id'] == ['client-123']
        assert params['response_type'] == ['code']
        assert params['redirect_uri'] == [spotify_config.redirect_uri]
        assert params['scope'] == [spotify_config.scopes]
        assert params['code_challenge_method'] == ['S256']

        sent = session.post_calls[0]['data']
        assert sent['grant_type'] == 'authorization_code'
        assert sent['code'] == 'the-code'
        assert sent['redirect_uri'] == spotify_config.redirect_uri
        assert sent['client_id'] == 'client-123'

        expected_challenge = base64.urlsafe_b64encode(
            hashlib.sha256(sent['code_verifier'].encode('ascii')).digest()
        ).decode('ascii').rstrip('=')
        assert params['code_challenge'] == [expected_challenge]

        assert manager.is_authenticated
        stored = CredentialStore(spotify_config.token_storage_path).load()
        assert stored.refresh_token == 'ref'
        assert stored.expires_at == clock() + timedelta(seconds=3600)

        threads[0].join()
        assert "Connected to Spotify!" in pages[0].text

    def test_timeout_returns_false_and_releases_port(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()])
        manager = make_manager(spotify_config, clock, session)

        assert manager.authenticate('client-123') is False
        assert session.post_calls == []
        assert not manager.is_authenticated

        port = urllib.parse.urlparse(spotify_config.redirect_uri).port
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('127.0.0.1', port))

    def test_cancel_returns_false(self, spotify_config, clock):
        config = replace(spotify_config, auth_timeout=30)
        cancel = threading.Event()
        threading.Timer(0.1, cancel.set).start()
        manager = make_manager(config, clock)

        started = time.monotonic()
        assert manager.authenticate('client-123', cancel_event=cancel) is False
        assert time.monotonic() - started < 5

    def test_denied_authorization_returns_false(self, spotify_config, clock):
        session = FakeSession(post_responses=[token_response()])

        def browser(url):
            threading.Thread(
                target=lambda: requests.get(f"{spotify_config.redirect_uri}/?error=access_denied", timeout=5)
            ).start()
            return True

        manager = make_manager(spotify_config, clock, session, open_browser=browser)

        assert manager.authenticate('client-123') is False
        assert session.post_calls == []

    def test_rejected_exchange_returns_false(self, spotify_config, clock):
        session = FakeSession(post_responses=[FakeResponse(400, {'error': 'invalid_grant'})])

        def browser(url):
            threading.Thread(
                target=lambda: requests.get(f"{spotify_config.redirect_uri}/?code=c", timeout=5)
            ).start()
            return True

        manager = make_manager(spotify_config, clock, session, open_browser=browser)

        assert manager.authenticate('client-123') is False
        assert not manager.is_authenticated

    def test_empty_client_id_returns_false(self, spotify_config, clock):
        opened = []
        manager = make_manager(spotify_config, clock, open_browser=opened.append)

        assert manager.authenticate('') is False
        assert opened == []

    def test_port_in_use_returns_false(self, spotify_config, clock):
        port = urllib.parse.urlparse(spotify_config.redirect_uri).port
        manager = make_manager(spotify_config, clock)

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(('127.0.0.1', port))
            blocker.listen(1)
            assert manager.authenticate('client-123') is False


def test_clear_tokens_signs_out_and_persists(spotify_config, clock):
    manager = make_manager(spotify_config, clock, record=expiring_record(clock, 600))
    assert manager.is_authenticated

    manager.clear_tokens()

    assert not manager.is_authenticated
    assert not CredentialStore(spotify_config.token_storage_path).load().is_authenticated
