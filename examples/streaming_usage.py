"""Channel-based streaming with cancellation."""

import threading

from claude_runner import QueryRequest, query_stream
from claude_runner.types import AssistantMessage, TextBlock


def main():
    cancel = threading.Event()
    messages, errors = query_stream(
        QueryRequest(prompt="Write a long poem about pipes"),
        cancel_event=cancel,
    )

    # Stop after ten seconds no matter what
    timer = threading.Timer(10, cancel.set)
    timer.start()

    try:
        for message in messages:
            if isinstance(message, AssistantMessage):
                for block in message.content:
                    if isinstance(block, TextBlock):
                        print(block.text)
    finally:
        timer.cancel()

    # The message channel is closed; the verdict follows
    error = errors.first()
    if error is not None:
        print(f"Query failed: {error}")


if __name__ == "__main__":
    main()
