import secrets

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Prefix for accounts that only sign in through a federated provider
UNUSABLE_PREFIX = "!"


def hash_password(password: str) -> str:
    return _pwd_context.hash(password[:72])


def unusable_password() -> str:
    return UNUSABLE_PREFIX + secrets.token_urlsafe(24)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash or password_hash.startswith(UNUSABLE_PREFIX):
        return False
    return _pwd_context.verify(password[:72], password_hash)
