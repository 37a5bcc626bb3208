"""Prompt assembly.

Turns a structured transcript into the flat text prompt used by the
providers that take a single prompt, and folds extracted document text
into the question it was attached to. No truncation or token budgeting
happens here; providers reject or trim oversized prompts themselves.
"""

from ..constants import DEFAULT_DOCUMENT_QUESTION
from ..conversation.models import DocumentAttachment, Message, Role


def assemble(history: list[Message]) -> str:
    """Build a linear transcript from messages in order.

    Args:
        history: Messages in transcript order

    Returns:
        "User: ..." / "Assistant: ..." blocks, each followed by a blank line
    """
    prompt = ""
    for msg in history:
        if msg.role == Role.USER:
            prompt += f"User: {msg.content}\n\n"
        else:
            prompt += f"Assistant: {msg.content}\n\n"
    return prompt


def document_prompt(document: DocumentAttachment, question: str) -> str:
    """Wrap a user question with the text of the document it refers to."""
    return (
        f"[Document: {document.original_name}]\n\n"
        f"{document.content}\n\n"
        f"---\n\n"
        f"User Question: {question or DEFAULT_DOCUMENT_QUESTION}"
    )


def fold_document(history: list[Message]) -> list[Message]:
    """Fold document text into the final user message.

    Only the last message is rewritten, and only when it is a user message
    carrying a document whose text has been extracted. The input list and
    its messages are left untouched.

    Returns:
        A new list suitable for an outgoing request
    """
    folded = list(history)
    if not folded:
        return folded

    last = folded[-1]
    attachment = last.attachment
    if (
        last.role == Role.USER
        and isinstance(attachment, DocumentAttachment)
        and attachment.content is not None
    ):
        folded[-1] = last.model_copy(update={"content": document_prompt(attachment, last.content)})
    return folded
