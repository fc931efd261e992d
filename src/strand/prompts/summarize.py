"""Summarization prompts for context compaction.

The compaction summary replaces every message up to its boundary in all
later contexts, so the prompt asks for a recap a model can continue from
rather than a description of the chat.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from strand.models.message import Message

COMPACTION_SUMMARIZE_SYSTEM: str = (
    "You are a context summarizer for an AI assistant's conversation history. "
    "The summary you write will replace the conversation below in the "
    "assistant's context, so it must carry everything needed to continue "
    "the conversation seamlessly.\n\n"
    "Guidelines:\n"
    "- Write in third-person narrative prose.\n"
    "- Preserve specific details: names, numbers, code snippets, file names, "
    "decisions, and agreed-upon constraints.\n"
    "- Keep the user's goals, preferences, and open questions.\n"
    "- Mention tool calls only by what they found or changed.\n"
    "- Omit pleasantries, greetings, and filler.\n"
    "- If a target token count is specified, aim for approximately that length.\n"
    '- Begin your summary with "Previously in this conversation:"'
)


def format_messages_for_summary(messages: list[Message]) -> str:
    """Render messages as ``role: content`` blocks.

    System messages are left out; attachments are listed by name only.
    """
    blocks: list[str] = []
    for message in messages:
        if message.role == "system":
            continue
        text = message.content.strip()
        attached = [f.name for f in message.files] + [l.title or l.url for l in message.links]
        if attached:
            text = f"{text}\n[attachments: {', '.join(attached)}]".strip()
        for call in message.tool_calls:
            text = f"{text}\n[tool {call.name}({call.arguments})]".strip()
        if text:
            blocks.append(f"{message.role}: {text}")
    return "\n\n".join(blocks)


def build_summary_messages(
    messages: list[Message],
    *,
    target_tokens: int | None = None,
    instructions: str | None = None,
    system_prompt: str = COMPACTION_SUMMARIZE_SYSTEM,
) -> list[dict[str, str]]:
    """Chat messages asking a model to summarize ``messages``."""
    prompt = (
        "Summarize the following conversation:\n\n"
        f"{format_messages_for_summary(messages)}"
    )
    if target_tokens is not None:
        prompt += f"\n\nTarget approximately {target_tokens} tokens."
    if instructions is not None:
        prompt += f"\nAdditional instructions: {instructions}"
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]
