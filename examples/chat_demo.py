"""终端对话演示：订阅状态存储并打印增量变化。"""

import sys

from cortex_agent.api.service import fetched_tables, get_default_orchestrator
from cortex_agent.domain.conversation import ConversationSnapshot
from cortex_agent.domain.models import ChartBlock, TextBlock, ToolUseBlock


class ConsoleRenderer:
    def __init__(self) -> None:
        self._printed_text = {}
        self._seen = set()
        self._last_state = None
        self._seen_notifications = 0

    def __call__(self, snapshot: ConversationSnapshot) -> None:
        if snapshot.state != self._last_state:
            self._last_state = snapshot.state
            print(f"\n[{snapshot.state.value}]", flush=True)
        for note in snapshot.notifications[self._seen_notifications:]:
            print(f"\n!! {note.message}", flush=True)
        self._seen_notifications = len(snapshot.notifications)

        latest = snapshot.latest_assistant_message_id
        for message in snapshot.messages:
            if message.id != latest:
                continue
            text = "".join(b.text for b in message.content if isinstance(b, TextBlock))
            done = self._printed_text.get(message.id, 0)
            if len(text) > done:
                print(text[done:], end="", flush=True)
                self._printed_text[message.id] = len(text)
            for block in message.content:
                if isinstance(block, ToolUseBlock) and ("tool", message.id, block.name) not in self._seen:
                    self._seen.add(("tool", message.id, block.name))
                    print(f"\n<tool {block.name}>", flush=True)
                if isinstance(block, ChartBlock) and ("chart", message.id) not in self._seen:
                    self._seen.add(("chart", message.id))
                    print("\n<chart>", flush=True)
            for table in fetched_tables(message):
                key = ("table", message.id, table.data.statement_handle, table.inline)
                if key in self._seen:
                    continue
                self._seen.add(key)
                print("\n" + " | ".join(table.data.columns))
                for row in table.data.rows[:20]:
                    print(" | ".join(str(v) for v in row))


if __name__ == "__main__":
    orchestrator = get_default_orchestrator()
    orchestrator.store.subscribe(ConsoleRenderer())
    question = " ".join(sys.argv[1:]) or "show total sales by region"
    print("User:", question)
    try:
        orchestrator.submit(question)
    finally:
        orchestrator.close()
    print()
