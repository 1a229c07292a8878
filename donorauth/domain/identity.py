"""
Donor identity derivation - deterministic, privacy-preserving identifiers.

The donor identity token is SHA-256 over the personal attributes
concatenated in a fixed order::

    first_name + last_name + date_of_birth + center_or_donor_id

No separator is inserted and no normalization is applied. Tokens already
stored by the platform were produced this way, so changing the encoding
would orphan every existing donor. The price is that field boundaries are
ambiguous ("Ann" + "aSmith" == "Anna" + "Smith").

Password material uses the same digest over ``password + salt``.
"""

import hashlib
import secrets
from collections.abc import Mapping
from dataclasses import dataclass

from .exceptions import InvalidAttributeError

DEFAULT_SALT_BYTES = 32


@dataclass(frozen=True)
class DonorAttributes:
    """Personal attributes the identity token is derived from, in hash order."""

    first_name: str
    last_name: str
    date_of_birth: str
    center_or_donor_id: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> "DonorAttributes":
        """Build from snake_case or camelCase keys (cached credentials use camelCase)."""

        def pick(*keys: str) -> str:
            for key in keys:
                if data.get(key):
                    return data[key]
            return ""

        return cls(
            first_name=pick("first_name", "firstName"),
            last_name=pick("last_name", "lastName"),
            date_of_birth=pick("date_of_birth", "dateOfBirth"),
            center_or_donor_id=pick(
                "center_or_donor_id", "donation_center", "donor_id", "donorId"
            ),
        )

    def ordered(self) -> tuple[str, str, str, str]:
        return (self.first_name, self.last_name, self.date_of_birth, self.center_or_donor_id)


_FIELD_NAMES = ("first_name", "last_name", "date_of_birth", "center_or_donor_id")


def sha256_hex(value: str) -> str:
    """SHA-256 of the UTF-8 encoding, as 64 lowercase hex characters."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def derive_identity(attributes: DonorAttributes) -> str:
    """
    Derive the donor identity token.

    Args:
        attributes: Donor attributes

    Returns:
        64-character lowercase hex token

    Raises:
        InvalidAttributeError: If any attribute is missing or blank
    """
    missing = [
        name
        for name, value in zip(_FIELD_NAMES, attributes.ordered(), strict=True)
        if value is None or not str(value).strip()
    ]
    if missing:
        raise InvalidAttributeError(missing)
    return sha256_hex("".join(attributes.ordered()))


def derive_password_hash(password: str, salt: str) -> str:
    """Hash a password with its per-credential salt."""
    missing = [name for name, value in (("password", password), ("salt", salt)) if not value]
    if missing:
        raise InvalidAttributeError(missing)
    return sha256_hex(password + salt)


def generate_salt(num_bytes: int = DEFAULT_SALT_BYTES) -> str:
    """
    Generate a cryptographically random salt, hex-encoded.

    Uses the secrets module; never fewer than 16 bytes (128 bits).
    """
    return secrets.token_hex(max(num_bytes, 16))


def hashes_match(expected: str, candidate: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return secrets.compare_digest(expected.encode(), candidate.encode())


def short_token(identity_token: str) -> str:
    """Truncated token for log lines."""
    return identity_token[:8] + "..."
