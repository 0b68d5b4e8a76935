from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit, unquote, parse_qs
import base64, binascii, uuid

import pendulum

from sentinel_vault.config.config_vault import DEFAULT_DIGITS, DEFAULT_PERIOD, DEFAULT_ALGORITHM
from sentinel_vault.utils.errors import InvalidSecret, InvalidUri


class Algorithm(Enum):
    """HMAC hash used for code generation. Order matches the archive index."""
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"

    @property
    def hash_name(self) -> str:
        """Name understood by hashlib / hmac."""
        return self.value.lower()

    @property
    def index(self) -> int:
        return list(Algorithm).index(self)

    @classmethod
    def from_value(cls, value) -> "Algorithm":
        """
        Coerce an algorithm given as enum, name or archive index.

        Accepts "SHA1", "sha256", "Algorithm.sha512" and integer indexes 0-2.

        Raises:
            ValueError: If the value names no supported algorithm.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
            raise ValueError(f"Unknown algorithm index: {value}")
        if isinstance(value, str):
            name = value.strip().upper().rsplit(".", 1)[-1].replace("-", "")
            if name in cls.__members__:
                return cls[name]
        raise ValueError(f"Unsupported algorithm: {value!r}")


def normalize_secret(secret: str) -> str:
    """
    Canonical form of a base32 secret.

    Removes whitespace and '=' padding and upper-cases the rest, so
    "jbsw y3dp ehpk 3pxp" and "JBSWY3DPEHPK3PXP" compare equal.
    """
    if not isinstance(secret, str):
        raise InvalidSecret("Secret must be a base32 string")
    return "".join(secret.split()).rstrip("=").upper()


def decode_secret(secret: str) -> bytes:
    """
    Decode a base32 secret into raw key bytes.

    Missing padding is restored before decoding.

    Raises:
        InvalidSecret: If the string is not base32 or decodes to nothing.
    """
    secret = normalize_secret(secret)
    padding = "=" * (-len(secret) % 8)
    try:
        key = base64.b32decode(secret + padding, casefold=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSecret(f"Secret is not valid base32: {e}") from e
    if not key:
        raise InvalidSecret("Secret is empty")
    return key


def _to_datetime(value) -> pendulum.DateTime:
    if isinstance(value, pendulum.DateTime):
        return value
    if isinstance(value, str):
        parsed = pendulum.parse(value)
        # parse() also returns durations and intervals
        if not isinstance(parsed, pendulum.DateTime):
            raise ValueError(f"Not an ISO-8601 date and time: {value!r}")
        return parsed
    raise TypeError(f"Expected ISO-8601 timestamp, got {type(value).__name__}")


@dataclass
class Account:
    """
    One enrolled TOTP credential.

    The secret is kept in its normalized base32 form. It is validated on
    construction so an Account that exists can always generate codes.
    """
    issuer: str
    account_label: str
    secret: str
    algorithm: Algorithm = Algorithm[DEFAULT_ALGORITHM]
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: pendulum.DateTime = field(default_factory=pendulum.now)
    last_used_at: pendulum.DateTime = field(default_factory=pendulum.now)

    def __post_init__(self):
        """
        Validate and normalize fields.

        Raises:
            InvalidSecret: If the secret is not usable.
            ValueError: For empty names or out-of-range digits/period.
            TypeError: For fields of the wrong type.
        """
        for name in ("issuer", "account_label", "id"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise TypeError(f"{name} must be a string")
            value = value.strip()
            if not value:
                raise ValueError(f"{name} cannot be empty")
            setattr(self, name, value)

        self.secret = normalize_secret(self.secret)
        decode_secret(self.secret)

        self.algorithm = Algorithm.from_value(self.algorithm)

        if isinstance(self.digits, bool) or not isinstance(self.digits, int):
            raise TypeError("digits must be an integer")
        if self.digits < 1:
            raise ValueError("digits must be at least 1")

        if isinstance(self.period, bool) or not isinstance(self.period, int):
            raise TypeError("period must be an integer")
        if self.period <= 0:
            raise ValueError("period must be greater than 0")

        self.created_at = _to_datetime(self.created_at)
        self.last_used_at = _to_datetime(self.last_used_at)

    def __repr__(self):
        return (
            f"Account(id={self.id}, "
            f"issuer={self.issuer}, "
            f"account_label={self.account_label}, "
            f"secret=<hidden>, "
            f"algorithm={self.algorithm.value}, "
            f"digits={self.digits}, "
            f"period={self.period})"
        )

    def secret_bytes(self) -> bytes:
        """Raw HMAC key decoded from the base32 secret."""
        return decode_secret(self.secret)

    def touch(self) -> None:
        """Mark the account as used now."""
        self.last_used_at = pendulum.now()

    def to_dict(self) -> dict:
        """
        Serialize the account for the local vault file.

        Returns:
            Dictionary with plaintext secret. The vault replaces the
            secret with its encrypted blob before writing.
        """
        return {
            "id": self.id,
            "issuer": self.issuer,
            "account_label": self.account_label,
            "secret": self.secret,
            "algorithm": self.algorithm.value,
            "digits": self.digits,
            "period": self.period,
            "created_at": self.created_at.to_iso8601_string(),
            "last_used_at": self.last_used_at.to_iso8601_string(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        """
        Create an account from vault storage data.

        Args:
            data: Stored account data with a plaintext secret.

        Returns:
            Reconstructed Account instance.
        """
        if not isinstance(data, dict):
            raise TypeError("Account data must be a dict")

        return cls(
            id=data["id"],
            issuer=data["issuer"],
            account_label=data["account_label"],
            secret=data["secret"],
            algorithm=data.get("algorithm", DEFAULT_ALGORITHM),
            digits=data.get("digits", DEFAULT_DIGITS),
            period=data.get("period", DEFAULT_PERIOD),
            created_at=data.get("created_at") or pendulum.now(),
            last_used_at=data.get("last_used_at") or pendulum.now(),
        )

    def to_dict_export(self) -> dict:
        """
        Serialize the account for a portable export archive.

        Security Notes:
            - The secret is returned in plaintext.
            - Only ever written inside an encrypted archive.
        """
        return {
            "id": self.id,
            "issuer": self.issuer,
            "accountLabel": self.account_label,
            "secret": self.secret,
            "algorithm": self.algorithm.value,
            "digits": self.digits,
            "period": self.period,
            "createdAt": self.created_at.to_iso8601_string(),
            "lastUsedAt": self.last_used_at.to_iso8601_string(),
        }

    @classmethod
    def from_dict_export(cls, data: dict) -> "Account":
        """
        Create an account from an archive entry.

        Also reads archives written by the mobile app, which use
        `accountName`, `secretKey` and an integer algorithm index.
        """
        if not isinstance(data, dict):
            raise TypeError("Account data must be a dict")

        label = data["accountLabel"] if "accountLabel" in data else data["accountName"]
        secret = data["secret"] if "secret" in data else data["secretKey"]

        return cls(
            id=data["id"],
            issuer=data["issuer"],
            account_label=label,
            secret=secret,
            algorithm=data.get("algorithm", DEFAULT_ALGORITHM),
            digits=data.get("digits", DEFAULT_DIGITS),
            period=data.get("period", DEFAULT_PERIOD),
            created_at=data.get("createdAt") or pendulum.now(),
            last_used_at=data.get("lastUsedAt") or pendulum.now(),
        )

    @classmethod
    def from_uri(cls, uri: str) -> "Account":
        """
        Create an account from an otpauth:// enrollment URI.

        Format:
            otpauth://totp/Issuer:account?secret=BASE32&issuer=Issuer
                &algorithm=SHA1&digits=6&period=30

        The issuer query parameter takes precedence over the label prefix.
        Without any issuer the account label is used as issuer.

        Raises:
            InvalidUri: If the URI is not a usable TOTP URI.
            InvalidSecret: If the secret is not valid base32.
        """
        if not isinstance(uri, str):
            raise InvalidUri("URI must be a string")

        parts = urlsplit(uri.strip())
        if parts.scheme.lower() != "otpauth" or parts.netloc.lower() != "totp":
            raise InvalidUri("Not an otpauth://totp URI")

        label = unquote(parts.path.lstrip("/"))
        issuer = ""
        account_label = label
        if ":" in label:
            issuer, account_label = label.split(":", 1)

        params = {key.lower(): values[0]
                  for key, values in parse_qs(parts.query, keep_blank_values=True).items()}

        secret = params.get("secret", "").strip()
        if not secret:
            raise InvalidUri("No secret found in URI")

        if params.get("issuer", "").strip():
            issuer = params["issuer"]

        issuer = issuer.strip() or account_label.strip()

        try:
            return cls(
                issuer=issuer,
                account_label=account_label,
                secret=secret,
                algorithm=params.get("algorithm", DEFAULT_ALGORITHM),
                digits=int(params.get("digits", DEFAULT_DIGITS)),
                period=int(params.get("period", DEFAULT_PERIOD)),
            )
        except InvalidSecret:
            raise
        except (ValueError, TypeError) as e:
            raise InvalidUri(f"Invalid otpauth URI: {e}") from e
