"""Authentication helpers.

Kept deliberately small:

- Password hashes (pbkdf2_sha256 via passlib) with a configurable work factor
- Stateless JWT access tokens (HS256) carrying the account id

Protected endpoints accept only `Authorization: Bearer <token>`. There are no
server-side sessions and no revocation list; deleting an account is what
invalidates its outstanding tokens, because every request re-resolves the
account from the store.
"""

from .deps import get_config, get_current_user, get_user_store
from .security import PasswordHasher, create_access_token, decode_access_token

__all__ = [
    "PasswordHasher",
    "create_access_token",
    "decode_access_token",
    "get_config",
    "get_current_user",
    "get_user_store",
]
