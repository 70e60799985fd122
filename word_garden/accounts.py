"""User accounts, password hashing and the per-user AI key store."""

import base64
import hashlib
import logging
import os
import secrets
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from werkzeug.security import check_password_hash, generate_password_hash

from . import db
from .errors import AuthenticationError, ConflictError, StorageError, ValidationError

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
# Prefixes produced by werkzeug's generate_password_hash
HASH_PREFIXES = ("pbkdf2:", "scrypt:")

SECRET_FILE = Path(os.environ.get("AI_KEY_SECRET_FILE", ".ai_key_secret"))

_fernet: Optional[Fernet] = None


def is_password_hash(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(HASH_PREFIXES)


def _verify_password(stored: str, password: str) -> bool:
    if is_password_hash(stored):
        return check_password_hash(stored, password)
    # Legacy plaintext row
    return secrets.compare_digest(stored.encode("utf-8"), password.encode("utf-8"))


def register(username: Any, password: Any) -> Dict[str, Any]:
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationError("Username and password are required")
    if len(username) < MIN_USERNAME_LENGTH or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Username needs at least {MIN_USERNAME_LENGTH} characters, "
            f"password at least {MIN_PASSWORD_LENGTH}"
        )
    with db.transaction() as session:
        if session.query(db.User).filter_by(username=username).one_or_none() is not None:
            raise ConflictError("Username already exists")
        user = db.User(username=username, password=generate_password_hash(password))
        session.add(user)
        session.flush()
        user_id = user.id
    logger.info("Registered user %s (%s)", username, user_id)
    return {"user_id": user_id, "username": username}


def authenticate(username: Any, password: Any) -> Dict[str, Any]:
    """Check credentials.

    A plaintext password left over from before hashing is accepted once and
    replaced by its hash.
    """
    if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
        raise ValidationError("Username and password are required")
    with db.transaction() as session:
        user = session.query(db.User).filter_by(username=username).one_or_none()
        if user is None or not _verify_password(user.password or "", password):
            raise AuthenticationError("Wrong username or password")
        if not is_password_hash(user.password):
            user.password = generate_password_hash(password)
            logger.info("Rehashed legacy password for user %s", user.id)
        return {"user_id": user.id, "username": user.username}


def change_password(user_id: Any, old_password: Any, new_password: Any) -> None:
    if not user_id or not isinstance(old_password, str) or not isinstance(new_password, str) or not old_password or not new_password:
        raise ValidationError("Missing required fields")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password needs at least {MIN_PASSWORD_LENGTH} characters")
    with db.transaction() as session:
        user = db.require_user(session, user_id)
        if not _verify_password(user.password or "", old_password):
            raise AuthenticationError("Old password is wrong")
        user.password = generate_password_hash(new_password)


# ----------------------------------------------------------------------
# API key store
# ----------------------------------------------------------------------
def _load_or_create_secret() -> str:
    secret = os.environ.get("AI_KEY_SECRET")
    if secret:
        return secret
    if SECRET_FILE.exists():
        return SECRET_FILE.read_text(encoding="utf-8").strip()
    generated = secrets.token_hex(32)
    SECRET_FILE.write_text(generated, encoding="utf-8")
    SECRET_FILE.chmod(0o600)
    logger.info("Generated a new AI key secret at %s", SECRET_FILE)
    return generated


def _cipher() -> Fernet:
    global _fernet
    if _fernet is None:
        digest = hashlib.sha256(_load_or_create_secret().encode("utf-8")).digest()
        _fernet = Fernet(base64.urlsafe_b64encode(digest))
    return _fernet


def reset_cipher() -> None:
    """Forget the cached cipher so the next call re-reads the secret."""
    global _fernet
    _fernet = None


def save_api_key(user_id: Any, api_key: Any) -> None:
    if not user_id or not isinstance(api_key, str) or not api_key.strip():
        raise ValidationError("Missing required fields")
    token = _cipher().encrypt(api_key.strip().encode("utf-8")).decode("ascii")
    with db.transaction() as session:
        user = db.require_user(session, user_id)
        user.api_key_enc = token


def get_api_key(user_id: Any) -> str:
    """Decrypted AI key for a user, or an empty string when none is stored."""
    session = db.get_session()
    try:
        user = db.require_user(session, user_id)
        token = user.api_key_enc
    finally:
        session.close()
    if not token:
        return ""
    try:
        return _cipher().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        logger.error("Stored AI key for user %s cannot be decrypted", user_id)
        raise StorageError("Stored API key cannot be read") from e


def has_api_key(user_id: Any) -> bool:
    session = db.get_session()
    try:
        return bool(db.require_user(session, user_id).api_key_enc)
    finally:
        session.close()
