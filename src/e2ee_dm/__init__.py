# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""e2ee_dm - client-side end-to-end encryption for federated direct messages.

The server only ever stores public keys and wrapped private keys. Everything
that touches plaintext or unwrapped key material runs here.

Architecture:
  Identity key (ECDH P-256, kid-addressed)
    → Wrappers (passkey PRF or 24-word recovery phrase, AES-256-GCM)
    → Unlock Orchestrator (single-flight, one prompt per session)
    → Actor Key Resolver (memoized, deduplicated public key lookups)
    → DM envelopes (ECDH + HKDF + AES-256-GCM, parties bound in AAD)

CLI entry point: ``e2ee-dm``
"""

__version__ = "0.1.0"

from .core.exceptions import E2EEError
from .dm import DMEnvelope, decrypt_dm, encrypt_dm
from .identity import Identity, IdentityKeyManager, generate_identity
from .session import E2EESession, RenderResult
from .unlock import UnlockOrchestrator, UnlockState

__all__ = [
    "__version__",
    "E2EEError",
    "DMEnvelope",
    "decrypt_dm",
    "encrypt_dm",
    "Identity",
    "IdentityKeyManager",
    "generate_identity",
    "E2EESession",
    "RenderResult",
    "UnlockOrchestrator",
    "UnlockState",
]
