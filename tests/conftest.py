import pytest

from word_garden import accounts, db


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    # Use a temporary SQLite DB, and rebind engine/session to it
    test_db = str(tmp_path / "test.db")
    monkeypatch.setenv("WORD_GARDEN_DB", test_db)
    db.configure_engine(f"sqlite:///{test_db}")
    db.init_db()
    yield
    db.engine.dispose()


@pytest.fixture(autouse=True)
def ai_secret(monkeypatch):
    monkeypatch.setenv("AI_KEY_SECRET", "test-secret")
    accounts.reset_cipher()
    yield
    accounts.reset_cipher()


@pytest.fixture
def user_id():
    return accounts.register("xiaoming", "password1")["user_id"]


@pytest.fixture
def other_user_id():
    return accounts.register("xiaohong", "password2")["user_id"]
