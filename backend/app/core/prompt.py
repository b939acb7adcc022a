from app.models.domain import Message, PromptMessage, Snippet

HISTORY_WINDOW = 8

_HISTORY_ROLES = {"user": "user", "assistant": "assistant"}


def build_system_prompt(display_name: str | None = None) -> str:
    owner = f" for {display_name}" if display_name else ""
    return (
        f"You're a helpful assistant{owner}.\n\n"
        "Your job is to answer questions based on the context provided. "
        "Be friendly and conversational - like you're helping a customer in person "
        "or via text message.\n\n"
        "Key rules:\n"
        "- Keep answers short and casual, in plain sentences rather than bullet lists\n"
        "- Give direct, helpful answers - no unnecessary questions like \"do you want X or Y?\"\n"
        "- If someone asks for info and you have it, just give it to them\n"
        "- Use the provided context intelligently - you can make reasonable inferences\n"
        "- If someone asks if you have/do something and the context shows you offer other "
        "things but NOT that specific thing, you can reasonably say \"Based on what I know, "
        "we don't offer [that], but we do have [alternatives]\"\n"
        "- Only say \"I don't have that information\" if the context is completely unrelated "
        "to the question\n"
        "- Never make up facts, prices, addresses, or specific details that aren't in the context\n\n"
        "Think: helpful person who can read between the lines, not a rigid database query."
    )


def build_context_section(snippets: list[Snippet]) -> str:
    # An empty list only means this query found nothing; the model is never
    # told whether the bot is trained.
    if not snippets:
        return "\n\n---\nNo relevant information found in the knowledge base for this question.\n---"

    body = "".join(f"{s.title}\n{s.content}\n\n" for s in snippets)
    return (
        "\n\n---\nRELEVANT INFORMATION:\n\n"
        f"{body}"
        "---\n\n"
        "Use the information above to answer the user's question. "
        "If the answer isn't there, say you don't have that information."
    )


def build_messages(
    message: str,
    snippets: list[Snippet],
    history: list[Message],
    display_name: str | None = None,
) -> list[PromptMessage]:
    """
    Assemble the prompt: one system message (persona + context), then the
    last HISTORY_WINDOW stored messages in their stored order, then the
    current user message.

    Legacy `human` operator rows inside the window are skipped.
    """
    messages = [
        PromptMessage(
            role="system",
            content=build_system_prompt(display_name) + build_context_section(snippets),
        )
    ]

    for entry in history[-HISTORY_WINDOW:]:
        role = _HISTORY_ROLES.get(entry.sender)
        if role:
            messages.append(PromptMessage(role=role, content=entry.content))

    messages.append(PromptMessage(role="user", content=message))
    return messages
