"""Secret and display-code generation."""

import secrets
import string

# Constants
CODE_ALPHABET = string.digits  # Easy to type on a TV remote
DEFAULT_CODE_LENGTH = 6
DEFAULT_SECRET_BYTES = 32
MIN_CODE_LENGTH = 4
MIN_SECRET_BYTES = 16  # 128 bits


class CodeGenerator:
    """
    Produces polling secrets and short approval codes.

    Both come from the `secrets` CSPRNG. Uniqueness is not guaranteed here;
    the pending-request registry retries on collision.
    """

    def __init__(
        self,
        code_length: int = DEFAULT_CODE_LENGTH,
        secret_bytes: int = DEFAULT_SECRET_BYTES,
        alphabet: str = CODE_ALPHABET,
    ):
        if code_length < MIN_CODE_LENGTH:
            raise ValueError(f"code_length must be at least {MIN_CODE_LENGTH}, got {code_length}")
        if secret_bytes < MIN_SECRET_BYTES:
            raise ValueError(f"secret_bytes must be at least {MIN_SECRET_BYTES}, got {secret_bytes}")
        if len(set(alphabet)) < 2:
            raise ValueError("alphabet needs at least two distinct characters")

        self.code_length = code_length
        self.secret_bytes = secret_bytes
        self.alphabet = alphabet

    def new_secret(self) -> str:
        """Return a hex secret with `secret_bytes` bytes of entropy."""
        return secrets.token_hex(self.secret_bytes)

    def new_code(self) -> str:
        """Return a `code_length` character code drawn from the alphabet."""
        return "".join(secrets.choice(self.alphabet) for _ in range(self.code_length))
