import os
import stat

import pytest

from word_garden import accounts, db
from word_garden.errors import AuthenticationError, ConflictError, NotFoundError, StorageError, ValidationError


def stored_user(user_id):
    session = db.get_session()
    try:
        return session.get(db.User, user_id)
    finally:
        session.close()


def test_register_hashes_password():
    user = accounts.register("xiaoli", "secret123")
    row = stored_user(user["user_id"])
    assert row.username == "xiaoli"
    assert row.password != "secret123"
    assert accounts.is_password_hash(row.password)


@pytest.mark.parametrize("username,password", [
    ("", "secret123"),
    ("xiaoli", ""),
    ("ab", "secret123"),
    ("xiaoli", "12345"),
])
def test_register_validation(username, password):
    with pytest.raises(ValidationError):
        accounts.register(username, password)


def test_register_duplicate_username(user_id):
    with pytest.raises(ConflictError):
        accounts.register("xiaoming", "another1")


def test_authenticate(user_id):
    assert accounts.authenticate("xiaoming", "password1") == {"user_id": user_id, "username": "xiaoming"}
    with pytest.raises(AuthenticationError):
        accounts.authenticate("xiaoming", "wrong-password")
    with pytest.raises(AuthenticationError):
        accounts.authenticate("nobody", "password1")


def test_legacy_plaintext_password_is_rehashed():
    with db.transaction() as session:
        session.add(db.User(username="olduser", password="plain123"))
    result = accounts.authenticate("olduser", "plain123")
    row = stored_user(result["user_id"])
    assert accounts.is_password_hash(row.password)
    # Still works after the rehash
    assert accounts.authenticate("olduser", "plain123")["username"] == "olduser"


def test_change_password(user_id):
    with pytest.raises(AuthenticationError):
        accounts.change_password(user_id, "not-it", "newpass1")
    with pytest.raises(ValidationError):
        accounts.change_password(user_id, "password1", "123")
    accounts.change_password(user_id, "password1", "newpass1")
    assert accounts.authenticate("xiaoming", "newpass1")["user_id"] == user_id
    with pytest.raises(AuthenticationError):
        accounts.authenticate("xiaoming", "password1")


def test_api_key_round_trip(user_id):
    assert not accounts.has_api_key(user_id)
    assert accounts.get_api_key(user_id) == ""
    accounts.save_api_key(user_id, "  sk-test-123  ")
    assert accounts.has_api_key(user_id)
    assert accounts.get_api_key(user_id) == "sk-test-123"
    assert "sk-test-123" not in stored_user(user_id).api_key_enc


def test_api_key_requires_value(user_id):
    with pytest.raises(ValidationError):
        accounts.save_api_key(user_id, "   ")


def test_api_key_unknown_user():
    with pytest.raises(NotFoundError):
        accounts.save_api_key(777, "sk-test")


def test_changed_secret_cannot_read_old_key(user_id, monkeypatch):
    accounts.save_api_key(user_id, "sk-test")
    monkeypatch.setenv("AI_KEY_SECRET", "a-different-secret")
    accounts.reset_cipher()
    with pytest.raises(StorageError):
        accounts.get_api_key(user_id)


def test_secret_file_generated_with_private_mode(user_id, tmp_path, monkeypatch):
    secret_file = tmp_path / ".ai_key_secret"
    monkeypatch.delenv("AI_KEY_SECRET")
    monkeypatch.setattr(accounts, "SECRET_FILE", secret_file)
    accounts.reset_cipher()

    accounts.save_api_key(user_id, "sk-file")
    assert secret_file.exists()
    assert stat.S_IMODE(os.stat(secret_file).st_mode) == 0o600

    # A fresh cipher reads the same file back
    accounts.reset_cipher()
    assert accounts.get_api_key(user_id) == "sk-file"
