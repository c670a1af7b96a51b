#!/usr/bin/env python3
"""
Calendar Assistant Runner Script

Terminal chat front-end for the calendar assistant.

Usage:
    python run.py                        # Chat
    python run.py --check-config         # Validate configuration
    python run.py --set-llm-key          # Store the LLM API key
    python run.py --set-client-id ID     # Store the Google OAuth client id
    python run.py --config PATH          # Use another settings file
    python run.py --debug                # Verbose logging on stderr

Chat commands:
    /confirm, /cancel       Answer a pending confirmation
    /edit EVENT_ID          Edit an existing event
    /upcoming               Upcoming events across calendars
    /image PATH [TEXT]      Send an image (e.g. a photo of a poster)
    /signout                Sign out and forget the conversation
    /quit                   Exit
"""

import argparse
import asyncio
import getpass
import mimetypes
import sys
from pathlib import Path

from loguru import logger

from calendar_assistant.assistant import CalendarAssistant
from calendar_assistant.core.config import config, env, ensure_directories, get_config, set_config
from calendar_assistant.core.credentials import CredentialStore
from calendar_assistant.core.errors import AssistantError
from calendar_assistant.core.events import Event, EventType
from calendar_assistant.core.llm import create_llm_client
from calendar_assistant.core.logger import setup_logging
from calendar_assistant.conversation.transcript import ImagePart, TurnRole
from calendar_assistant.tools.identity import GoogleIdentity
from calendar_assistant.tools.scheduling import SchedulingClient


def check_config() -> None:
    """Check configuration and print status."""
    print("\n" + "=" * 60)
    print("Calendar Assistant Configuration Check")
    print("=" * 60 + "\n")

    cfg = config()
    settings = env()
    store = CredentialStore()

    llm_key = store.resolve_llm_key(settings, cfg.llm.provider)
    client_id = store.resolve_client_id(settings)

    print(f"  Timezone:     {cfg.general.timezone}")
    print(f"  LLM provider: {cfg.llm.provider} ({cfg.llm.model})")
    print(f"  {'✅' if llm_key else '❌'} LLM API key")
    print(f"  {'✅' if client_id else '❌'} Google OAuth client id")
    print(f"  {'✅' if Path(settings.google_token_path).exists() else '⚠️'} Google token cached")

    if llm_key and client_id:
        print("\n✅ Configuration is valid. The assistant is ready to run.")
        sys.exit(0)
    print("\n❌ Configuration is incomplete. Use --set-llm-key and --set-client-id.")
    sys.exit(1)


async def print_turn(event: Event) -> None:
    turn = event.data["turn"]
    if turn.role == TurnRole.MODEL and turn.text:
        print(f"\nAssistant: {turn.text}\n")


async def print_calendar_change(event: Event) -> None:
    day = event.data.get("date")
    if day:
        print(f"(calendar updated for {day.isoformat()})")


async def chat(assistant: CalendarAssistant) -> None:
    """Text chat loop."""
    assistant.event_bus.subscribe(EventType.TURN_APPENDED, print_turn)
    assistant.event_bus.subscribe(EventType.CALENDAR_CHANGED, print_calendar_change)

    print("\n" + "=" * 60)
    print("Calendar Assistant")
    print("Type /quit to stop")
    print("=" * 60 + "\n")

    if not await assistant.sign_in():
        print("Not signed in to Google. Calendar actions will fail until you restart and sign in.")

    loop = asyncio.get_running_loop()
    while True:
        try:
            user_input = (await loop.run_in_executor(None, input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not user_input:
            continue

        command, _, rest = user_input.partition(" ")
        command = command.lower()

        if command in ("/quit", "/exit"):
            print("\nGoodbye!")
            break
        elif command == "/confirm":
            reply = await assistant.confirm()
        elif command == "/cancel":
            reply = await assistant.cancel()
        elif command == "/edit" and rest.strip():
            reply = await assistant.start_edit(rest.strip())
        elif command == "/upcoming":
            try:
                events = await assistant.upcoming()
            except AssistantError as e:
                print(e.user_message())
                continue
            for item in events:
                print(item.format_display(assistant.config.tz))
            if not events:
                print("No upcoming events.")
            continue
        elif command == "/signout":
            await assistant.sign_out()
            print("Signed out. The conversation has been cleared.")
            continue
        elif command == "/image" and rest.strip():
            path_text, _, text = rest.strip().partition(" ")
            path = Path(path_text).expanduser()
            if not path.is_file():
                print(f"No such file: {path}")
                continue
            mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
            image = ImagePart(mime_type=mime_type, data=path.read_bytes())
            reply = await assistant.handle_user_input(text or "What is in this image?", [image])
        else:
            reply = await assistant.handle_user_input(user_input)

        if reply.notice:
            print(reply.notice)


def main():
    parser = argparse.ArgumentParser(description="Calendar Assistant - chat with your Google Calendar")
    parser.add_argument("--check-config", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--config", type=str, help="Path to configuration file")
    parser.add_argument("--set-llm-key", action="store_true", help="Store the LLM API key")
    parser.add_argument("--set-client-id", type=str, metavar="CLIENT_ID", help="Store the Google OAuth client id")
    parser.add_argument("--debug", action="store_true", help="Log debug output to stderr")
    args = parser.parse_args()

    if args.config:
        set_config(get_config(args.config))
    cfg = config()
    if args.debug:
        cfg.general.debug = True

    ensure_directories()
    setup_logging(cfg, console=args.debug)
    store = CredentialStore()

    if args.set_llm_key:
        key_value = getpass.getpass(f"Enter {cfg.llm.provider} API key: ").strip()
        if key_value:
            store.update(llm_api_key=key_value)
            print("✅ LLM API key saved")
        return

    if args.set_client_id:
        store.update(oauth_client_id=args.set_client_id.strip())
        print("✅ Google OAuth client id saved")
        return

    if args.check_config:
        check_config()
        return

    settings = env()
    try:
        llm = create_llm_client(cfg.llm, store.resolve_llm_key(settings, cfg.llm.provider))
    except AssistantError as e:
        print(e.user_message())
        sys.exit(1)

    identity = GoogleIdentity(
        client_id=store.resolve_client_id(settings),
        client_secret=settings.google_client_secret,
        token_file=settings.google_token_path,
    )
    client = SchedulingClient(
        default_calendar=cfg.calendar.default_calendar_id,
        default_task_list=cfg.calendar.default_task_list,
    )
    assistant = CalendarAssistant(llm, client, cfg, identity=identity)

    try:
        asyncio.run(chat(assistant))
    except AssistantError as e:
        logger.error(f"Startup failed: {e.message}")
        print(e.user_message())
        sys.exit(1)


if __name__ == "__main__":
    main()
