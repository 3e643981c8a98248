"""Terminal entry point for the reminder engine."""

import asyncio
import sys

from config.config import load_config, validate_config
from remindly.app.reminder_app import ReminderApp
from remindly.reminders.notification_dispatcher import Notification
from remindly.utils.command_parser import HELP_TEXT
from remindly.utils.logger import log_error, log_info, setup_logging


# Global queue for notifications
notification_queue: "asyncio.Queue[str]" = asyncio.Queue()


def display_notification(notification: Notification):
    """Callback for displaying reminders as they fire.

    Called from the scheduler's task, so it only queues the message for the
    display task.

    Args:
        notification: Delivered reminder
    """
    notification_queue.put_nowait(notification.message)


async def notification_display_task(prompt: str):
    """Background task that displays notifications as they arrive.

    This runs concurrently with the main loop and prints notifications
    immediately, even while waiting for user input.
    """
    while True:
        try:
            message = await notification_queue.get()

            # Use carriage return to overwrite input prompt
            print(f"\r{message}")
            print(prompt, end="", flush=True)

            log_info(f"Notification displayed: {message}")

        except asyncio.CancelledError:
            break


async def main():
    """Main application loop."""

    print("=" * 60)
    print("  REMINDLY")
    print("  Time-zone aware personal reminders")
    print("=" * 60)
    print()

    log_info("Loading configuration...")
    try:
        config = load_config()
    except Exception as e:
        log_error(f"Failed to load configuration: {e}")
        print(f"Error: {e}")
        return

    setup_logging(config.logging.level, config.logging.date_format)
    for problem in validate_config(config):
        log_error(f"Configuration problem: {problem}")

    terminal = config.terminal
    reminder_app = ReminderApp(config=config)
    reminder_app.register_notification_callback(display_notification)

    notification_task = asyncio.create_task(notification_display_task(terminal.prompt))

    try:
        await reminder_app.startup()
        log_info("Ready")

        print()
        print(f"{terminal.assistant_prefix}{HELP_TEXT}")
        print()
        print("             Commands: /help, /stats, /quit")
        print()
        print("-" * 60)
        print()

        while True:
            try:
                # Blocking read in a thread so reminders display concurrently
                user_input = await asyncio.to_thread(input, terminal.prompt)
                user_input = user_input.strip()

                if not user_input:
                    continue

                if user_input in ("/quit", "/exit"):
                    print(f"\n{terminal.assistant_prefix}Goodbye! 👋")
                    break

                if user_input == "/stats":
                    stats = reminder_app.get_reminder_stats()
                    scheduler = stats["scheduler"]
                    print("\nReminder Service:")
                    print(f"  Armed reminders: {scheduler['armed']}")
                    print(f"  Reminders delivered: {scheduler['delivered']}")
                    print(f"  Delivery failures: {scheduler['delivery_failures']}")
                    print(f"  Lost recurrences: {scheduler['lost_recurrences']}")
                    print(f"  Service running: {'Yes' if stats['is_started'] else 'No'}")
                    print()
                    continue

                reply = await reminder_app.handle_message(terminal.user_id, user_input)
                print(f"\n{terminal.assistant_prefix}{reply}\n")

            except KeyboardInterrupt:
                print("\n\nInterrupted. Type /quit to exit gracefully.\n")
                continue

            except EOFError:
                break

    except Exception as e:
        log_error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")

    finally:
        log_info("Shutting down...")

        notification_task.cancel()
        try:
            await notification_task
        except asyncio.CancelledError:
            pass

        await reminder_app.shutdown()
        print("\nReminders saved. Goodbye!")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
