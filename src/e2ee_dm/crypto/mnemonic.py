"""24-word recovery phrases (BIP-39 layout, English word list).

256 bits of entropy are extended with the first 8 bits of their SHA-256
digest, giving 264 bits that split into 24 indices of 11 bits each. Decoding
reverses the split and recomputes the checksum; a mismatch is an error, never
a silently different key.

The 2048-word dictionary comes from the ``mnemonic`` package (the reference
BIP-39 implementation) so phrases interoperate with other BIP-39 tooling.
"""

from __future__ import annotations

import hashlib
from functools import lru_cache

from mnemonic import Mnemonic

from ..core.exceptions import (
    InvalidMnemonicChecksum,
    InvalidMnemonicLength,
    InvalidMnemonicWord,
)
from .aead import random_bytes

WORDLIST_NAME = "bip39-en"
ENTROPY_BYTES = 32
WORD_COUNT = 24
_BITS_PER_WORD = 11
_CHECKSUM_BITS = ENTROPY_BYTES * 8 // 32  # 8


@lru_cache(maxsize=1)
def _wordlist() -> tuple[str, ...]:
    words = tuple(Mnemonic("english").wordlist)
    if len(words) != 2048:
        raise RuntimeError(f"expected 2048 words in the BIP-39 list, got {len(words)}")
    return words


@lru_cache(maxsize=1)
def _word_index() -> dict[str, int]:
    return {word: i for i, word in enumerate(_wordlist())}


def _checksum(entropy: bytes) -> int:
    return hashlib.sha256(entropy).digest()[0] >> (8 - _CHECKSUM_BITS)


def normalize_phrase(phrase: str) -> list[str]:
    """Lower-case and split a phrase, collapsing any run of whitespace."""
    return phrase.lower().split()


def entropy_to_words(entropy: bytes) -> list[str]:
    """Encode 32 bytes of entropy as 24 dictionary words.

    Raises:
        ValueError: If ``entropy`` is not exactly 32 bytes.
    """
    if len(entropy) != ENTROPY_BYTES:
        raise ValueError(f"entropy must be {ENTROPY_BYTES} bytes, got {len(entropy)}")

    bits = (int.from_bytes(entropy, "big") << _CHECKSUM_BITS) | _checksum(entropy)
    words = _wordlist()
    mask = (1 << _BITS_PER_WORD) - 1
    return [
        words[(bits >> (_BITS_PER_WORD * (WORD_COUNT - 1 - i))) & mask]
        for i in range(WORD_COUNT)
    ]


def words_to_entropy(phrase: str | list[str]) -> bytes:
    """Decode a 24-word phrase back to its 32 bytes of entropy.

    Args:
        phrase: The phrase as typed (any case, any whitespace) or a word list.

    Raises:
        InvalidMnemonicLength: Word count is not 24.
        InvalidMnemonicWord: A word is not in the dictionary.
        InvalidMnemonicChecksum: The checksum bits do not match.
    """
    words = normalize_phrase(phrase) if isinstance(phrase, str) else [w.lower().strip() for w in phrase]
    if len(words) != WORD_COUNT:
        raise InvalidMnemonicLength(len(words), WORD_COUNT)

    index = _word_index()
    bits = 0
    for position, word in enumerate(words):
        value = index.get(word)
        if value is None:
            raise InvalidMnemonicWord(word, position)
        bits = (bits << _BITS_PER_WORD) | value

    checksum = bits & ((1 << _CHECKSUM_BITS) - 1)
    entropy = (bits >> _CHECKSUM_BITS).to_bytes(ENTROPY_BYTES, "big")
    if _checksum(entropy) != checksum:
        raise InvalidMnemonicChecksum()
    return entropy


def generate_phrase() -> tuple[bytes, list[str]]:
    """Draw fresh entropy and return it with its 24-word phrase."""
    entropy = random_bytes(ENTROPY_BYTES)
    return entropy, entropy_to_words(entropy)
