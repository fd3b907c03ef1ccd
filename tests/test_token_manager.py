import json
from datetime import datetime, timezone

from cryptography.fernet import Fernet

from clients.auth import CredentialStore
from schemas import TokenRecord, EPOCH


def make_record():
    return TokenRecord(
        access_token='access-1',
        refresh_token='refresh-1',
        expires_at=datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)
    )


def test_saved_record_loads_back(tmp_path):
    store = CredentialStore(tmp_path / 'nested' / 'tokens.json')
    store.save(make_record())

    assert store.load() == make_record()

    on_disk = json.loads((tmp_path / 'nested' / 'tokens.json').read_text())
    assert on_disk['refresh_token'] == 'refresh-1'
    assert on_disk['expires_at'].startswith('2024-05-01T13:00:00')


def test_missing_file_means_signed_out(tmp_path):
    record = CredentialStore(tmp_path / 'absent.json').load()

    assert record == TokenRecord()
    assert not record.is_authenticated


def test_corrupt_file_means_signed_out(tmp_path):
    path = tmp_path / 'tokens.json'
    path.write_text('{not json')

    assert CredentialStore(path).load() == TokenRecord()


def test_wrong_shape_means_signed_out(tmp_path):
    path = tmp_path / 'tokens.json'
    path.write_text('["a", "b"]')

    assert CredentialStore(path).load() == TokenRecord()


def test_naive_expiry_is_read_as_utc(tmp_path):
    path = tmp_path / 'tokens.json'
    path.write_text(json.dumps({
        'access_token': 'a',
        'refresh_token': 'r',
        'expires_at': '2024-05-01T13:00:00'
    }))

    record = CredentialStore(path).load()
    assert record.expires_at == datetime(2024, 5, 1, 13, 0, tzinfo=timezone.utc)


def test_clear_persists_an_empty_record(tmp_path):
    path = tmp_path / 'tokens.json'
    store = CredentialStore(path)
    store.save(make_record())

    store.clear()

    assert path.exists()
    record = store.load()
    assert record.refresh_token == ''
    assert record.expires_at == EPOCH


def test_save_leaves_no_temp_files(tmp_path):
    store = CredentialStore(tmp_path / 'tokens.json')
    store.save(make_record())
    store.save(make_record())

    assert [p.name for p in tmp_path.iterdir()] == ['tokens.json']


def test_encrypted_store_round_trips_and_hides_tokens(tmp_path):
    key = Fernet.generate_key().decode('ascii')
    path = tmp_path / 'tokens.json'
    store = CredentialStore(path, encryption_key=key)

    store.save(make_record())

    assert b'refresh-1' not in path.read_bytes()
    assert store.load() == make_record()


def test_encrypted_store_with_wrong_key_means_signed_out(tmp_path):
    path = tmp_path / 'tokens.json'
    CredentialStore(path, encryption_key=Fernet.generate_key().decode('ascii')).save(make_record())

    other = CredentialStore(path, encryption_key=Fernet.generate_key().decode('ascii'))
    assert other.load() == TokenRecord()
