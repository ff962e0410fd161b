from pwdlib import PasswordHash

# Argon2id with pwdlib's recommended parameters
password_hash = PasswordHash.recommended()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check a login or reset password against the stored hash.

    Args:
        plain_password: Password as typed by the user
        hashed_password: Hash from the user table

    Returns:
        True when the password matches
    """
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Argon2 hash to store in the user table."""
    return password_hash.hash(password)
