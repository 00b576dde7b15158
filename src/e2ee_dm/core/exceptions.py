# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Exception hierarchy for the E2EE DM core.

Every failure that crosses a module boundary is an :class:`E2EEError`
subclass. Each carries a stable ``code`` (matching the server's error
strings where one exists), a ``user_message`` suitable for display, and a
``retryable`` flag. Cryptographic failures are never retryable; network
failures always are.
"""

from __future__ import annotations

from typing import Any


class E2EEError(Exception):
    """Base exception for all E2EE DM errors."""

    code = "e2ee_error"
    user_message = "Encrypted DMs are unavailable right now."
    retryable = False

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "details": self.details,
        }


class NotEnabled(E2EEError):  # noqa: N818
    """The account has no active E2EE identity key."""

    code = "e2ee_not_enabled"
    user_message = "Encrypted DMs are not enabled for this account."


class NoWrapperAvailable(E2EEError):  # noqa: N818
    """No stored wrapper can be serviced on this device."""

    code = "e2ee_no_wrapper"
    user_message = "No recovery method for your encryption key is usable on this device."

    def __init__(self, message: str | None = None, wrapper_types: list[str] | None = None):
        details = {}
        if wrapper_types is not None:
            details["wrapper_types"] = wrapper_types
        super().__init__(message, details)
        self.wrapper_types = wrapper_types or []


class PRFUnsupported(E2EEError):  # noqa: N818
    """The authenticator returned no PRF / hmac-secret output."""

    code = "e2ee_prf_unsupported"
    user_message = (
        "This passkey provider does not support the WebAuthn PRF / hmac-secret "
        "extensions, so it can't be used for encrypted DM key recovery. Try a "
        "different passkey provider or use a recovery code instead."
    )


class UserCancelled(E2EEError):  # noqa: N818
    """The user dismissed an authenticator prompt or the phrase entry."""

    code = "e2ee_user_cancelled"
    user_message = "Unlock was cancelled."


class InvalidMnemonic(E2EEError):  # noqa: N818
    """Base class for recovery phrase decoding failures."""

    code = "e2ee_invalid_mnemonic"
    user_message = "That recovery phrase is not valid."


class InvalidMnemonicLength(InvalidMnemonic):
    """The phrase does not contain exactly the expected number of words."""

    code = "e2ee_invalid_mnemonic_length"
    user_message = "A recovery phrase has exactly 24 words."

    def __init__(self, word_count: int, expected: int = 24):
        super().__init__(
            f"expected {expected} words, got {word_count}",
            {"word_count": word_count, "expected": expected},
        )
        self.word_count = word_count
        self.expected = expected


class InvalidMnemonicWord(InvalidMnemonic):
    """A word is not in the recovery phrase dictionary."""

    code = "e2ee_invalid_mnemonic_word"
    user_message = "Your recovery phrase contains a word that is not in the word list."

    def __init__(self, word: str, position: int):
        super().__init__(
            f"unknown word {word!r} at position {position}",
            {"word": word, "position": position},
        )
        self.word = word
        self.position = position


class InvalidMnemonicChecksum(InvalidMnemonic):
    """All words are known but the embedded checksum does not match."""

    code = "e2ee_invalid_mnemonic_checksum"
    user_message = "Your recovery phrase has a typo or the words are out of order."


class DecryptionFailed(E2EEError):  # noqa: N818
    """AEAD authentication failed (wrapped key or message)."""

    code = "e2ee_decryption_failed"
    user_message = "This message could not be decrypted."


class EnvelopeFormatError(E2EEError):
    """An envelope is structurally invalid or uses an unknown version/alg."""

    code = "e2ee_bad_envelope"
    user_message = "This encrypted message is malformed."


class RecipientKeyUnavailable(E2EEError):  # noqa: N818
    """No usable public key was found for the counterparty."""

    code = "e2ee_missing_key"
    user_message = "This person has not enabled encrypted DMs."

    def __init__(self, actor_id: str, kid: str | None = None):
        details: dict[str, Any] = {"actor_id": actor_id}
        if kid:
            details["kid"] = kid
        super().__init__(f"no E2EE key for {actor_id}", details)
        self.actor_id = actor_id
        self.kid = kid


class NetworkError(E2EEError):
    """Transport-level failure talking to the E2EE services."""

    code = "e2ee_network_error"
    user_message = "Could not reach the server. Please try again."
    retryable = True

    def __init__(self, message: str | None = None, status: int | None = None, url: str | None = None):
        details: dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if url:
            details["url"] = url
        super().__init__(message, details)
        self.status = status
        self.url = url


class AlreadyEnabled(E2EEError):  # noqa: N818
    """Registration refused because an active key already exists."""

    code = "already_enabled"
    user_message = "Encrypted DMs are already enabled."


class RegistrationFailed(E2EEError):  # noqa: N818
    """Registration rejected for a reason other than ``already_enabled``."""

    code = "e2ee_registration_failed"
    user_message = "Could not enable encrypted DMs."

    def __init__(self, message: str | None = None, status: int | None = None, error: str | None = None):
        details: dict[str, Any] = {}
        if status is not None:
            details["status"] = status
        if error:
            details["error"] = error
        super().__init__(message, details)
        self.status = status
        self.error = error


class SessionLocked(E2EEError):  # noqa: N818
    """A message was rendered without prompting while no key is unlocked."""

    code = "e2ee_locked"
    user_message = "Unlock encrypted DMs to read this message."
    retryable = True
