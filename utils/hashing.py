from passlib.context import CryptContext

# argon2id everywhere. Account passwords use the default category; the lighter
# "token" category is for hashing issued tokens, which are already high entropy.
argon2_context = CryptContext(
    schemes=['argon2'],
    deprecated='auto',
    argon2__memory_cost=65536,
    argon2__rounds=3,
    argon2__parallelism=4,
    token__argon2__memory_cost=16384,
    token__argon2__rounds=2,
    token__argon2__parallelism=2,
)


class VerificationError(Exception):
    """The stored digest could not be used to verify a secret."""


def get_password_hash(password: str) -> str:
    return argon2_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check a password against its stored digest.

    Raises:
        VerificationError: the digest is corrupt or not an argon2 hash. This is
            kept apart from a plain mismatch so callers never read a broken
            record as "wrong password".
    """
    try:
        return argon2_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        raise VerificationError(str(e)) from e


def hash_token(token: str) -> str:
    return argon2_context.hash(token, category="token")


def verify_token_hash(token: str, token_hash: str) -> bool:
    try:
        return argon2_context.verify(token, token_hash, category="token")
    except (ValueError, TypeError) as e:
        raise VerificationError(str(e)) from e
