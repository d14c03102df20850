"""
Chat Prompts

System instruction and templates for the retrieval-generation chain.

Templates are LangChain ChatPromptTemplates; ``chat_history`` is a
MessagesPlaceholder filled with the prior turns of the conversation.
"""

from typing import List

from langchain_core.messages import BaseMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder


SYSTEM_INSTRUCTION = """You are a helpful assistant answering questions about the user's documents.

- Base your answers on the provided context
- If the context does not contain the answer, say so plainly
- Don't make up information that isn't in the context
- Keep answers concise and answer in the language of the question"""


REWRITE_INSTRUCTION = """Given the conversation so far and the user's latest message, \
rewrite the latest message as a standalone search query that can be understood \
without the conversation. Resolve pronouns and ellipsis against the history.

Return ONLY the rewritten query. Do not answer it. If the message is already \
standalone, return it unchanged."""


def build_context_prompt(context: str, question: str) -> str:
    """User turn carrying the retrieved context and the original question."""
    return f"Context: {context}\n\nQuestion: {question}\n\nAnswer:"


REWRITE_PROMPT = ChatPromptTemplate.from_messages([
    ("system", REWRITE_INSTRUCTION),
    MessagesPlaceholder(variable_name="chat_history"),
    ("human", "{input}"),
])

ANSWER_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_INSTRUCTION),
    MessagesPlaceholder(variable_name="chat_history"),
    ("human", "{input}"),
])


def build_rewrite_messages(
    question: str,
    chat_history: List[BaseMessage]
) -> List[BaseMessage]:
    return REWRITE_PROMPT.format_messages(
        input=question,
        chat_history=chat_history,
    )


def build_answer_messages(
    question: str,
    context: str,
    chat_history: List[BaseMessage]
) -> List[BaseMessage]:
    """
    Messages for the GENERATE step.

    The context goes into the human turn verbatim, so braces in
    document text are never read as template variables.
    """
    return ANSWER_PROMPT.format_messages(
        input=build_context_prompt(context, question),
        chat_history=chat_history,
    )


def build_welcome_prompt(missing_attributes: List[str]) -> str:
    """
    Prompt for the greeting stored at the start of a user's first conversation.

    Args:
        missing_attributes: Required attributes not known yet
    """
    prompt = (
        "Write a short, friendly welcome message (two or three sentences) "
        "for a new user of a document question-answering assistant. "
        "Explain that they can ask questions about the uploaded documents."
    )

    if missing_attributes:
        prompt += (
            " Also invite them, without insisting, to share the following "
            f"information about themselves: {', '.join(missing_attributes)}."
        )

    return prompt + " Return only the message text."
