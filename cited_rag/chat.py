"""
Interactive Chat

Multi-turn question answering over the indexed documents, with
conversation memory and export.
"""

import logging
from pathlib import Path
from typing import Optional

from .conversation import ConversationManager
from .errors import ProviderError
from .pipeline import RAGPipeline, PipelineConfig, AnswerWithSources, format_answer_with_sources

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /help              Show this help
  /history           Show the conversation history
  /clear             Clear the history and start over
  /sources           Show every source used in this conversation
  /export [format]   Export the conversation (text or json)
  /exit, /quit       Leave the chat

Anything else is treated as a question about the documents.
"""


class ChatSession:
    """Command loop around a pipeline and a conversation."""

    def __init__(self, pipeline: RAGPipeline, export_dir: str = "data"):
        self.pipeline = pipeline
        self.conversation = ConversationManager()
        self.export_dir = Path(export_dir)
        self.last_result: Optional[AnswerWithSources] = None
        self.running = True

    def handle(self, line: str) -> str:
        """Process one input line and return the text to show."""
        line = line.strip()
        if not line:
            return ""
        if line.startswith("/"):
            return self.handle_command(line)
        return self.handle_question(line)

    def handle_question(self, question: str) -> str:
        try:
            result = self.pipeline.query(
                question,
                conversation_context=self.conversation.format_history_for_prompt() or None
            )
        except ProviderError as exc:
            logger.error("Question failed: %s", exc)
            return f"Error while answering: {exc}"

        self.last_result = result
        self.conversation.add_turn(question, result)
        return format_answer_with_sources(result)

    def handle_command(self, command: str) -> str:
        parts = command.split()
        cmd = parts[0].lower()

        if cmd == "/history":
            return self.conversation.format_history_for_display()
        elif cmd == "/clear":
            self.conversation.clear()
            self.last_result = None
            return "Conversation history cleared."
        elif cmd == "/sources":
            return self._format_sources()
        elif cmd == "/export":
            export_format = parts[1].lower() if len(parts) > 1 else "text"
            return self._export(export_format)
        elif cmd == "/help":
            return HELP_TEXT
        elif cmd in ("/exit", "/quit"):
            self.running = False
            return f"Goodbye! Turns in this conversation: {len(self.conversation)}"
        else:
            return f"Unknown command: {cmd}\n{HELP_TEXT}"

    def _format_sources(self) -> str:
        if self.last_result is None or not self.last_result.sources:
            return "No sources for the last answer."

        sources = self.conversation.all_sources()
        lines = [
            f"Sources in the last answer: {len(self.last_result.sources)}",
            f"Unique sources in this conversation: {len(sources)}",
            "",
        ]
        for number, source in enumerate(sources, 1):
            lines.append(f"[{number}] {source.file} - {source.chunk_id}")
            lines.append(f"    Score: {source.score:.4f}")
            lines.append(f'    "{source.preview}"')
            lines.append("")
        return "\n".join(lines)

    def _export(self, export_format: str) -> str:
        if export_format not in ("text", "json"):
            return f"Unknown export format: {export_format} (use text or json)"

        self.export_dir.mkdir(parents=True, exist_ok=True)
        if export_format == "json":
            path = self.export_dir / f"conversation-{self.conversation.id}.json"
            content = self.conversation.export_json()
        else:
            path = self.export_dir / f"conversation-{self.conversation.id}.txt"
            content = self.conversation.export_text()

        try:
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as exc:
            return f"Export failed: {exc}"
        return f"Conversation exported to {path}"


def main():
    """CLI entry point for the chat."""
    import argparse

    parser = argparse.ArgumentParser(description="Chat with the indexed documents")
    parser.add_argument("--config", "-c", help="Config file path")
    parser.add_argument("--export-dir", default="data")

    args = parser.parse_args()
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    config = PipelineConfig.from_config_file(args.config) if args.config else PipelineConfig()
    session = ChatSession(RAGPipeline(config), export_dir=args.export_dir)

    print("Chat started. Type /help for commands.")
    while session.running:
        try:
            line = input("\nYou: ")
        except (EOFError, KeyboardInterrupt):
            break
        output = session.handle(line)
        if output:
            print(output)


if __name__ == "__main__":
    main()
