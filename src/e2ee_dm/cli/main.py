#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
e2ee-dm CLI - end-to-end encrypted direct messages from the terminal.

Commands:
  e2ee-dm status                      Show E2EE status for the account
  e2ee-dm enable-recovery             Enable E2EE with a 24-word recovery phrase
  e2ee-dm unlock                      Unlock the identity key with the recovery phrase
  e2ee-dm encrypt <actor>             Encrypt a message to an actor
  e2ee-dm decrypt [file]              Decrypt an envelope (file or stdin)
  e2ee-dm lock                        Forget cached private keys
  e2ee-dm phrase-check                Validate a recovery phrase offline
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.config import E2EESettings, get_config
from ..core.exceptions import E2EEError
from ..core.logging import configure_logging
from ..crypto.mnemonic import words_to_entropy
from ..identity.keys import fingerprint_jwk
from ..identity.wrappers import MnemonicWrapper
from ..session import E2EESession
from .output import output_error, output_result

logger = logging.getLogger(__name__)


# ============================================================================
# Helpers
# ============================================================================


def _read_phrase() -> str | None:
    try:
        return getpass.getpass("Recovery phrase: ")
    except EOFError:
        return None


async def prompt_phrase() -> str | None:
    """Ask for the recovery phrase without echoing it."""
    return await asyncio.to_thread(_read_phrase)


def settings_from_args(args: argparse.Namespace) -> E2EESettings:
    """Apply command-line overrides on top of the environment config."""
    overrides: dict[str, Any] = {}
    if getattr(args, "server", None):
        overrides["server_url"] = args.server
    if getattr(args, "token", None):
        overrides["token"] = args.token
    if getattr(args, "actor", None):
        overrides["actor_id"] = args.actor
    if getattr(args, "key_cache_dir", None):
        overrides["key_cache_dir"] = args.key_cache_dir
    config = get_config()
    return config.model_copy(update=overrides) if overrides else config


def build_session(args: argparse.Namespace) -> E2EESession:
    settings = settings_from_args(args)
    return E2EESession(settings.actor_id, settings=settings, phrase_prompt=prompt_phrase)


def _run(args: argparse.Namespace, action: Callable[[E2EESession], Awaitable[dict[str, Any] | None]]) -> int:
    if not settings_from_args(args).actor_id:
        output_error("No actor configured. Pass --actor or set E2EE_DM_ACTOR_ID.")
        return 1

    async def runner() -> dict[str, Any] | None:
        async with build_session(args) as session:
            return await action(session)

    try:
        result = asyncio.run(runner())
    except E2EEError as e:
        logger.debug(f"Command failed: {e.to_dict()}")
        output_error(e.user_message)
        return 1

    if result is not None:
        output_result(result, as_json=args.json)
    return 0


# ============================================================================
# Commands
# ============================================================================


def cmd_status(args: argparse.Namespace) -> int:
    """Show whether E2EE is enabled and which wrappers are stored."""

    async def action(session: E2EESession) -> dict[str, Any]:
        status = await session.status()
        result: dict[str, Any] = {"enabled": status.enabled}
        if status.active_key is not None:
            result["kid"] = status.active_key.kid
            if status.active_key.public_jwk:
                result["fingerprint"] = fingerprint_jwk(status.active_key.public_jwk)
        result["wrappers"] = [w.type for w in status.wrappers]
        return result

    return _run(args, action)


def cmd_enable_recovery(args: argparse.Namespace) -> int:
    """Enable E2EE with a freshly generated recovery phrase."""

    async def action(session: E2EESession) -> dict[str, Any]:
        registration, words = await session.enable_with_recovery_phrase()
        if not args.json:
            print("Write these words down. They are shown only once:\n", file=sys.stderr)
        return {
            "kid": registration.kid,
            "fingerprint": registration.fingerprint,
            "words": words,
        }

    return _run(args, action)


def cmd_unlock(args: argparse.Namespace) -> int:
    """Unlock the identity key (with a recovery phrase on this device)."""

    async def action(session: E2EESession) -> dict[str, Any]:
        identity = await session.unlock(prefer_type=MnemonicWrapper.type)
        return {"kid": identity.kid, "fingerprint": identity.fingerprint, "state": session.state.value}

    return _run(args, action)


def cmd_encrypt(args: argparse.Namespace) -> int:
    """Encrypt a message to a recipient actor."""
    plaintext = args.message if args.message is not None else sys.stdin.read()

    async def action(session: E2EESession) -> dict[str, Any] | None:
        envelope = await session.encrypt_for(plaintext, args.recipient, args.kid)
        if args.json:
            return envelope.to_dict()
        print(envelope.to_json())
        return None

    return _run(args, action)


def cmd_decrypt(args: argparse.Namespace) -> int:
    """Decrypt an envelope read from a file or stdin."""
    if args.file and args.file != "-":
        try:
            with open(args.file, encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            output_error(f"Cannot read {args.file}: {e.strerror or e}")
            return 1
    else:
        text = sys.stdin.read()

    async def action(session: E2EESession) -> dict[str, Any] | None:
        rendered = await session.decrypt_for_render(text.strip(), prompt=not args.no_prompt)
        if rendered.locked:
            raise _RenderFailed(rendered.reason, rendered.message)
        if args.json:
            return {"plaintext": rendered.plaintext}
        print(rendered.plaintext)
        return None

    return _run(args, action)


class _RenderFailed(E2EEError):
    """Carries a locked render result out of the event loop."""

    def __init__(self, reason: str | None, message: str | None):
        super().__init__(message, {"reason": reason})
        self.code = reason or self.code
        self.user_message = message or self.user_message


def cmd_lock(args: argparse.Namespace) -> int:
    """Forget locally cached private keys."""

    async def action(session: E2EESession) -> dict[str, Any]:
        session.lock()
        return {"state": session.state.value}

    return _run(args, action)


def cmd_phrase_check(args: argparse.Namespace) -> int:
    """Check a recovery phrase's words and checksum without contacting the server."""
    phrase = _read_phrase()
    if not phrase:
        output_error("No recovery phrase entered.")
        return 1
    try:
        words_to_entropy(phrase)
    except E2EEError as e:
        output_error(f"{e.user_message} ({e.message})")
        return 1
    output_result({"valid": True}, as_json=args.json)
    return 0


# ============================================================================
# Main Entry Point
# ============================================================================


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="e2ee-dm",
        description="End-to-end encrypted direct messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  e2ee-dm status                                  Show E2EE status
  e2ee-dm enable-recovery                         Enable with a recovery phrase
  e2ee-dm encrypt https://remote.example/users/bob -m "hi" > msg.json
  e2ee-dm decrypt msg.json                        Decrypt an envelope

Configuration is read from E2EE_DM_* environment variables or .env.
        """,
    )
    parser.add_argument("--server", help="Instance base URL (E2EE_DM_SERVER_URL)")
    parser.add_argument("--token", help="Bearer token (E2EE_DM_TOKEN)")
    parser.add_argument("--actor", help="Your ActivityPub actor id (E2EE_DM_ACTOR_ID)")
    parser.add_argument("--key-cache-dir", help="Private key cache directory (E2EE_DM_KEY_CACHE_DIR)")
    parser.add_argument("--json", action="store_true", help="Output JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    status_p = subparsers.add_parser("status", help="Show E2EE status for the account")
    status_p.set_defaults(func=cmd_status)

    enable_p = subparsers.add_parser("enable-recovery", help="Enable E2EE with a recovery phrase")
    enable_p.set_defaults(func=cmd_enable_recovery)

    unlock_p = subparsers.add_parser("unlock", help="Unlock the identity key")
    unlock_p.set_defaults(func=cmd_unlock)

    encrypt_p = subparsers.add_parser("encrypt", help="Encrypt a message to an actor")
    encrypt_p.add_argument("recipient", help="Recipient ActivityPub actor id")
    encrypt_p.add_argument("--kid", help="Encrypt to this specific recipient key")
    encrypt_p.add_argument("--message", "-m", help="Message text (default: read stdin)")
    encrypt_p.set_defaults(func=cmd_encrypt)

    decrypt_p = subparsers.add_parser("decrypt", help="Decrypt an envelope")
    decrypt_p.add_argument("file", nargs="?", help="Envelope JSON file (default: stdin)")
    decrypt_p.add_argument("--no-prompt", action="store_true", help="Fail instead of prompting to unlock")
    decrypt_p.set_defaults(func=cmd_decrypt)

    lock_p = subparsers.add_parser("lock", help="Forget cached private keys")
    lock_p.set_defaults(func=cmd_lock)

    check_p = subparsers.add_parser("phrase-check", help="Validate a recovery phrase offline")
    check_p.set_defaults(func=cmd_phrase_check)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging(level="DEBUG" if args.verbose else None)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
