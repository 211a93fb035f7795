"""Password hashing for stored credentials."""

from pwdlib import PasswordHash


def get_password_hasher() -> PasswordHash:
    """Return the shared PasswordHash instance (Argon2, pwdlib's recommended settings)."""
    if not hasattr(get_password_hasher, "cached_instance"):
        get_password_hasher.cached_instance = PasswordHash.recommended()
    return get_password_hasher.cached_instance


def hash_password(password: str) -> str:
    """Hash a password with a random salt. The result is safe to store."""
    return get_password_hasher().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return get_password_hasher().verify(plain_password, hashed_password)


__all__ = [
    "get_password_hasher",
    "hash_password",
    "verify_password",
]
