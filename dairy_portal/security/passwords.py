from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 8

# Verified against when the username is unknown so failed logins take the same time.
_DUMMY_HASH = password_hash.hash('dairy-portal-dummy-password')


def hash_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password_hash.hash(raw_password)


def verify_and_upgrade_password(raw_password: str, hashed_password: str | None) -> tuple[bool, str | None]:
    """Verify a password and return a fresh hash when the stored one uses outdated parameters."""
    if not hashed_password:
        password_hash.verify(raw_password, _DUMMY_HASH)
        return False, None
    return password_hash.verify_and_update(raw_password, hashed_password)
