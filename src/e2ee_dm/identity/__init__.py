"""E2EE identity keys and their recovery wrappers.

Key concepts:
- **Identity**: the account's ECDH P-256 keypair, identified by ``kid``.
- **WrapperRecord**: the private key sealed under a wrapping key, plus the
  params needed to re-derive that key (passkey PRF or recovery phrase).
- **WrapperUnlocker**: the ceremony that re-derives a wrapping key.
- **IdentityKeyManager**: generation, registration, unwrap and local caching.

Security properties:
- The private key never leaves the device unwrapped.
- Passkey and recovery phrase derivations use distinct HKDF info strings.
"""

from e2ee_dm.identity.cache import FileKeyCache, InMemoryKeyCache, PrivateKeyCache
from e2ee_dm.identity.keys import (
    Identity,
    generate_identity,
    public_key_from_jwk,
    public_key_to_jwk,
    unwrap_private_key,
    wrap_private_key,
)
from e2ee_dm.identity.unlockers import MnemonicUnlocker, PasskeyUnlocker, WrapperUnlocker
from e2ee_dm.identity.wrappers import MnemonicWrapper, PasskeyWrapper, WrapperRecord, wrapper_from_dict
from e2ee_dm.identity.manager import IdentityKeyManager, RegistrationResult

__all__ = [
    "FileKeyCache",
    "InMemoryKeyCache",
    "PrivateKeyCache",
    "Identity",
    "generate_identity",
    "public_key_from_jwk",
    "public_key_to_jwk",
    "wrap_private_key",
    "unwrap_private_key",
    "MnemonicUnlocker",
    "PasskeyUnlocker",
    "WrapperUnlocker",
    "MnemonicWrapper",
    "PasskeyWrapper",
    "WrapperRecord",
    "wrapper_from_dict",
    "IdentityKeyManager",
    "RegistrationResult",
]
