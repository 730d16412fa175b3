import os

from argon2.low_level import Type, hash_secret_raw


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    password: bytes,
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = 32,
) -> bytes:
    """
    Derive raw key bytes from a password using Argon2id.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )


def hash_password(password, salt, **params) -> str:
    """Salted password digest as hex. ``salt`` may be bytes or a hex string."""
    if isinstance(salt, str):
        salt = bytes.fromhex(salt)
    return derive_key(password, salt, **params).hex()
