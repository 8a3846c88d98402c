"""Terminal chat client for the booking assistant.

Runs one BookingSession in-process against the configured chat model and
booking store.  Plain lines are sent to the assistant; lines starting with
``/`` are commands:

  /review                     show the booking form
  /submit [field=value ...]   apply edits and submit the booking
  /reset                      start over
  /signin | /signout          Firebase email/password sign-in
  /dashboard                  show your approval flows (signed in only)
  /quit                       exit

Usage:
    python -m booking_assistant.cli
    python -m booking_assistant.cli --store memory --verbose
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import shlex
import sys
from typing import Any, Optional

from dotenv import load_dotenv

from booking_assistant.config import settings
from booking_assistant.dashboard import load_dashboard
from booking_assistant.identity.base import IdentityError, IdentityProvider, IdentityUser
from booking_assistant.models.booking import BOOKING_FIELDS, field_label
from booking_assistant.pipeline import build_pipeline
from booking_assistant.session import (
    BookingSession,
    SessionBusyError,
    SessionStateError,
    register_session,
    unregister_session,
)
from booking_assistant.stores.base import BookingStoreError

log = logging.getLogger("booking_assistant.cli")


def parse_edits(tokens: list[str]) -> dict[str, Any]:
    """Turn ``field=value`` tokens into a details dict.

    Raises ValueError for unknown fields or tokens without ``=``.
    """
    edits: dict[str, Any] = {}
    for token in tokens:
        name, sep, value = token.partition("=")
        if not sep:
            raise ValueError(f"Expected field=value, got {token!r}")
        if name not in BOOKING_FIELDS:
            raise ValueError(f"Unknown field {name!r}")
        edits[name] = value
    return edits


def format_form(details: dict[str, Any]) -> str:
    lines = []
    for name in BOOKING_FIELDS:
        value = details.get(name)
        lines.append(f"  {field_label(name):<22} {name}={'' if value is None else value}")
    return "\n".join(lines)


class TerminalClient:
    """Wires a BookingSession and an optional identity provider to stdin/stdout."""

    def __init__(
        self,
        session: BookingSession,
        identity: Optional[IdentityProvider] = None,
        out=None,
    ) -> None:
        self.session = session
        self.identity = identity
        self.out = out or sys.stdout
        self._user: Optional[IdentityUser] = None
        self._unsubscribe = None

    def say(self, text: str) -> None:
        print(text, file=self.out)

    def start(self) -> None:
        if self.identity is not None:
            self._unsubscribe = self.identity.observe_auth_state(self._on_auth_state)
        self.say(f"AI: {self.session.greeting()}")

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_state(self, user: Optional[IdentityUser]) -> None:
        previous = self._user
        self._user = user
        self.session.owner_email = user.email if user else ""
        if user is not None:
            self.say(f"[signed in as {user.email}]")
        elif previous is not None:
            # Signing out discards the conversation
            self.say("[signed out]")
            if not self.session.is_busy:
                self.say(f"AI: {self.session.reset()}")

    async def handle_line(self, line: str) -> bool:
        """Process one input line.  Returns False when the client should exit."""
        line = line.strip()
        if not line:
            return True
        if not line.startswith("/"):
            try:
                turn = await self.session.handle_message(line)
            except (SessionBusyError, SessionStateError) as e:
                self.say(f"[{e}]")
                return True
            self.say(f"AI: {turn.message}")
            return True

        command, *args = shlex.split(line)
        try:
            if command == "/quit":
                return False
            elif command == "/review":
                self.say(format_form(self.session.start_review()))
            elif command == "/submit":
                edits = parse_edits(args)
                details = {**self.session.details, **edits} if edits else None
                result = await self.session.submit(details)
                self.say(f"AI: {result.message}")
                if result.succeeded:
                    self.say(f"[booking id {result.booking_id}]")
            elif command == "/reset":
                self.say(f"AI: {self.session.reset()}")
            elif command == "/signin":
                await self._sign_in()
            elif command == "/signout":
                await self._require_identity().sign_out()
            elif command == "/dashboard":
                await self._show_dashboard()
            else:
                self.say(f"[unknown command {command}]")
        except (ValueError, SessionBusyError, SessionStateError) as e:
            self.say(f"[{e}]")
        except IdentityError as e:
            self.say(f"[sign-in failed: {e.code}]")
        return True

    def _require_identity(self) -> IdentityProvider:
        if self.identity is None:
            raise ValueError("Sign-in is not configured. Set FIREBASE_API_KEY in .env.")
        return self.identity

    async def _sign_in(self) -> None:
        identity = self._require_identity()
        email = input("Email: ").strip()
        password = getpass.getpass("Password: ")
        await identity.sign_in(email, password)

    async def _show_dashboard(self) -> None:
        if self._user is None:
            raise ValueError("Sign in to see your dashboard.")
        try:
            flows = await load_dashboard(self.session.pipeline.store, self._user.email)
        except BookingStoreError as e:
            self.say(f"[{e}]")
            return
        if not flows:
            self.say("No approval flows yet.")
        for progress in flows:
            marks = " > ".join(
                f"[{s.label}]" if s.is_current else (s.label if s.is_active else f"({s.label})")
                for s in progress.steps
            )
            self.say(f"{progress.flow.flow_id or '-'}  {marks}")


async def run(args: argparse.Namespace) -> None:
    if args.store:
        settings.store_backend = args.store
    for warning in settings.validate_startup():
        log.warning(warning)

    identity: Optional[IdentityProvider] = None
    if settings.firebase_api_key:
        from booking_assistant.identity.firebase import FirebaseIdentityProvider

        identity = FirebaseIdentityProvider(settings.firebase_api_key)

    session = BookingSession(build_pipeline(settings))
    register_session(session)
    client = TerminalClient(session, identity)
    client.start()
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "You: ")
            except EOFError:
                break
            if not await client.handle_line(line):
                break
    finally:
        client.close()
        unregister_session(session.session_id)


def main():
    parser = argparse.ArgumentParser(
        description="Chat with the room booking assistant in the terminal",
        prog="python -m booking_assistant.cli",
    )
    parser.add_argument(
        "--store", choices=["firestore", "memory"],
        help="Override STORE_BACKEND for this run",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
    )

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
