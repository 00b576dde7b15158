"""e2ee_dm core - configuration, logging and the exception hierarchy."""

from .config import E2EESettings, clear_config_cache, get_config
from .exceptions import (
    AlreadyEnabled,
    DecryptionFailed,
    E2EEError,
    EnvelopeFormatError,
    InvalidMnemonic,
    InvalidMnemonicChecksum,
    InvalidMnemonicLength,
    InvalidMnemonicWord,
    NetworkError,
    NotEnabled,
    NoWrapperAvailable,
    PRFUnsupported,
    RecipientKeyUnavailable,
    RegistrationFailed,
    SessionLocked,
    UserCancelled,
)
from .logging import configure_logging, correlation_context, redact
