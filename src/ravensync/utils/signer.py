"""Signing identity and direct message cipher capabilities.

[Signer][ravensync.utils.signer.Signer] wraps the user's key material. It is
passed explicitly to the engine at construction, never looked up from global
state, so several identities can coexist in one process.

Three modes exist:

* ``keys`` -- a local private key; can sign.
* ``extension`` -- signing is delegated to an external signer (the ``nip07``
  placeholder secret); synthetic, cannot sign locally.
* ``none`` -- no key at all; synthetic.

[Cipher][ravensync.utils.signer.Cipher] is the boundary for direct message
encryption. The default
[PassthroughCipher][ravensync.utils.signer.PassthroughCipher] leaves text
untouched.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from nostr_sdk import Keys

from ravensync.core.exceptions import CannotPublishError, SigningError


if TYPE_CHECKING:
    from nostr_sdk import Event, EventBuilder


logger = logging.getLogger(__name__)


EXTENSION_SECRET = "nip07"  # pragma: allowlist secret
NO_SECRET = "none"  # pragma: allowlist secret
SYNTHETIC_SECRETS: frozenset[str] = frozenset({EXTENSION_SECRET, NO_SECRET})


class SignerMode(StrEnum):
    """How the identity signs events."""

    KEYS = "keys"
    EXTENSION = "extension"
    NONE = "none"


class Signer:
    """Explicit signing identity.

    Examples:
        ```python
        signer = Signer.from_secret("nsec1...")  # pragma: allowlist secret
        signer.identity()       # hex pubkey
        signer.is_synthetic()   # False

        Signer.from_secret("nip07").is_synthetic()  # True
        Signer.from_secret(None).identity()         # None
        ```
    """

    __slots__ = ("_keys", "_mode", "_pubkey")

    def __init__(
        self,
        keys: Keys | None = None,
        *,
        mode: SignerMode | None = None,
        pubkey: str | None = None,
    ) -> None:
        self._keys = keys
        self._mode = mode or (SignerMode.KEYS if keys is not None else SignerMode.NONE)
        if self._mode == SignerMode.KEYS and keys is None:
            raise ValueError("keys mode requires keys")
        self._pubkey = keys.public_key().to_hex() if keys is not None else pubkey

    @classmethod
    def from_keys(cls, keys: Keys) -> Signer:
        return cls(keys)

    @classmethod
    def extension(cls, pubkey: str | None = None) -> Signer:
        """Synthetic identity whose signing is delegated to an external signer."""
        return cls(mode=SignerMode.EXTENSION, pubkey=pubkey)

    @classmethod
    def from_secret(cls, secret: str | None) -> Signer:
        """Build a signer from a user-supplied secret.

        ``"nip07"`` selects the extension placeholder. ``"none"``, an empty
        value, or a key that does not parse yield a no-key signer.
        """
        value = (secret or "").strip()
        if value == EXTENSION_SECRET:
            return cls.extension()
        if not value or value == NO_SECRET:
            return cls()
        try:
            return cls(Keys.parse(value))
        except Exception:  # nostr-sdk FFI raises its own error types on bad keys
            logger.warning("invalid_secret mode=%s", SignerMode.NONE)
            return cls()

    @property
    def mode(self) -> SignerMode:
        return self._mode

    def identity(self) -> str | None:
        """Hex public key of this identity, or ``None`` when unknown."""
        return self._pubkey

    def is_synthetic(self) -> bool:
        """True for placeholder identities that cannot sign locally."""
        return self._mode != SignerMode.KEYS

    def can_publish(self) -> bool:
        return not self.is_synthetic() and self._pubkey is not None

    def sign(self, builder: EventBuilder) -> Event:
        """Sign *builder* with the local key.

        Raises:
            CannotPublishError: If the identity is synthetic.
            SigningError: If the underlying signer fails.
        """
        if self._keys is None:
            raise CannotPublishError(f"signer in {self._mode} mode cannot sign")
        try:
            return builder.sign_with_keys(self._keys)
        except Exception as e:  # nostr-sdk FFI raises its own error types
            raise SigningError(f"signing failed: {e}") from e

    def __repr__(self) -> str:
        return f"Signer(mode={self._mode.value!r}, identity={self._pubkey!r})"


class Cipher(Protocol):
    """Direct message encryption boundary.

    Implementations may raise any exception from ``decrypt``; the
    reconstruction pipeline reports it as
    [DecryptionError][ravensync.core.exceptions.DecryptionError].
    """

    async def encrypt(self, peer: str, plaintext: str) -> str: ...

    async def decrypt(self, peer: str, ciphertext: str) -> str: ...


class PassthroughCipher:
    """Cipher that returns its input unchanged."""

    async def encrypt(self, peer: str, plaintext: str) -> str:
        return plaintext

    async def decrypt(self, peer: str, ciphertext: str) -> str:
        return ciphertext
