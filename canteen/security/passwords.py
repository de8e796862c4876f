from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 6


def password_problem(raw_password: str | None, *, label: str = 'Password') -> str | None:
    if not raw_password or len(raw_password) < MIN_PASSWORD_LENGTH:
        return f'{label} must be at least {MIN_PASSWORD_LENGTH} characters.'
    return None


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    # An empty submission never matches, whatever is stored.
    if not raw_password:
        return False
    return password_hash.verify(raw_password, hashed_password)
