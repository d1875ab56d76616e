"""Password hashing with bcrypt (passlib). Only hashes are stored."""

from passlib.context import CryptContext

_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt only reads the first 72 bytes of a secret
BCRYPT_MAX_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return _context.hash(_secret(password))


def verify_password(password: str, hashed: str) -> bool:
    return _context.verify(_secret(password), hashed)
