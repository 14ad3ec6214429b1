from __future__ import annotations

import json
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from datastore.credential_store import CredentialStore


def test_token_is_created_once_and_reused(tmp_path: Path) -> None:
    store = CredentialStore(persistence_path=tmp_path / "credentials.json")

    first = store.get_or_create_token()
    second = store.get_or_create_token()

    assert first
    assert first == second


def test_token_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"
    token = CredentialStore(persistence_path=path).get_or_create_token()

    reloaded = CredentialStore(persistence_path=path)

    assert reloaded.get_or_create_token() == token
    payload = json.loads(path.read_text())
    assert list(payload) == ["1"]
    assert payload["1"]["token"] == token


def test_find_by_token_matches_exactly(tmp_path: Path) -> None:
    store = CredentialStore(persistence_path=tmp_path / "credentials.json")
    token = store.get_or_create_token()

    found = store.find_by_token(token)

    assert found is not None
    assert found.token == token
    assert store.find_by_token(token.upper() + "x") is None
    assert store.find_by_token(token[:-1]) is None
    assert store.find_by_token("") is None


def test_find_by_token_on_empty_store() -> None:
    store = CredentialStore()

    assert store.find_by_token("anything") is None


def test_concurrent_first_use_creates_single_token(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"
    store = CredentialStore(persistence_path=path)
    barrier = threading.Barrier(16)

    def fetch() -> str:
        barrier.wait()
        return store.get_or_create_token()

    with ThreadPoolExecutor(max_workers=16) as executor:
        tokens = list(executor.map(lambda _i: fetch(), range(16)))

    assert len(set(tokens)) == 1
    assert json.loads(path.read_text())["1"]["token"] == tokens[0]


def test_token_created_by_other_instance_is_picked_up(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"
    server_side = CredentialStore(persistence_path=path)
    cli_side = CredentialStore(persistence_path=path)

    token = cli_side.get_or_create_token()

    assert server_side.find_by_token(token) is not None
    assert server_side.get_or_create_token() == token


def test_credential_write_leaves_no_staging_file(tmp_path: Path) -> None:
    path = tmp_path / "credentials.json"

    token = CredentialStore(persistence_path=path).get_or_create_token()

    assert sorted(item.name for item in tmp_path.iterdir()) == ["credentials.json"]
    assert json.loads(path.read_text())["1"]["token"] == token
