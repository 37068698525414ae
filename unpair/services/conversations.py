"""Two-party chat: deterministic conversation ids, idempotent creation, messages."""

from typing import Optional
from pydantic import ValidationError

from unpair.models.conversation import Conversation, Message
from unpair.services.supabase_client import (
    SupabaseClient,
    generate_id,
    get_conversations_for_user,
    get_row,
    insert_row,
    is_duplicate_key_error,
    select_rows,
    update_row,
    utc_now,
)
from unpair.services.users import get_profiles
from unpair.utils.config import AppConfig
from unpair.utils.errors import (
    AuthenticationRequiredError,
    FormValidationError,
    NotFoundError,
    PermissionDeniedError,
    SupabaseError,
)
from unpair.utils.logging import (
    get_structured_logger,
    mask_user_id,
    sanitize_message_text,
)

logger = get_structured_logger(__name__)

CONVERSATION_ID_SEPARATOR = "_"


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Same id no matter which of the two users starts the chat."""
    return CONVERSATION_ID_SEPARATOR.join(sorted([user_a, user_b]))


async def get_conversation(conversation_id: str) -> Optional[Conversation]:
    row = await get_row(AppConfig.CONVERSATIONS_TABLE, "conversation_id", conversation_id)
    return Conversation(**row) if row else None


async def get_or_create_conversation(user_id: Optional[str], other_user_id: str) -> Conversation:
    """Return the conversation between two users, creating it on first contact.

    Creation relies on the primary key of conversations: if a concurrent call
    inserted the same id first, the duplicate-key error is swallowed and the
    existing row is returned.
    """
    if not user_id:
        raise AuthenticationRequiredError("Please log in to message the seller")
    if not isinstance(other_user_id, str) or not other_user_id.strip():
        raise FormValidationError("Who do you want to message?")
    if user_id == other_user_id:
        raise FormValidationError("You can't message yourself", title="Oops!")

    conversation_id = conversation_id_for(user_id, other_user_id)

    existing = await get_conversation(conversation_id)
    if existing is not None:
        return existing

    conversation = Conversation(
        conversation_id=conversation_id,
        participants=sorted([user_id, other_user_id]),
        last_message=None,
        last_message_time=None,
        created_at=utc_now(),
    )

    async with SupabaseClient() as client:
        try:
            result = client.table(AppConfig.CONVERSATIONS_TABLE).insert(
                conversation.model_dump(mode="json")
            ).execute()
        except Exception as e:
            if not is_duplicate_key_error(e):
                raise SupabaseError(f"Failed to create conversation: {e}") from e
            logger.info(
                "Conversation created concurrently, reusing it",
                conversation_id=conversation_id,
            )
            result = None

    if result is not None and result.data:
        logger.info(
            "Conversation created",
            conversation_id=conversation_id,
            user_id=mask_user_id(user_id),
            other_user_id=mask_user_id(other_user_id),
        )
        return Conversation(**result.data[0])

    existing = await get_conversation(conversation_id)
    if existing is None:
        raise SupabaseError(f"Conversation {conversation_id} vanished after insert")
    return existing


async def _require_participant(conversation_id: str, user_id: Optional[str]) -> Conversation:
    if not user_id:
        raise AuthenticationRequiredError("Please log in to chat")
    conversation = await get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    if user_id not in conversation.participants:
        raise PermissionDeniedError("You're not part of this conversation")
    return conversation


async def send_message(conversation_id: str, sender_id: Optional[str], text: str) -> Message:
    """Append a message and refresh the conversation preview."""
    await _require_participant(conversation_id, sender_id)

    try:
        message = Message(
            message_id=generate_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=text or "",
            created_at=utc_now(),
        )
    except ValidationError:
        raise FormValidationError("Type a message first", title="Empty message")

    stored = Message(**await insert_row(AppConfig.MESSAGES_TABLE, message.model_dump(mode="json")))

    await update_row(
        AppConfig.CONVERSATIONS_TABLE,
        "conversation_id",
        conversation_id,
        {"last_message": stored.text, "last_message_time": stored.created_at},
    )

    logger.info(
        "Message sent",
        conversation_id=conversation_id,
        sender_id=mask_user_id(sender_id),
        message_preview=sanitize_message_text(stored.text, max_length=100),
    )
    return stored


async def fetch_messages(conversation_id: str) -> list[Message]:
    rows = await select_rows(
        AppConfig.MESSAGES_TABLE,
        filters={"conversation_id": conversation_id},
        order_by="created_at",
    )
    return [Message(**row) for row in rows]


async def list_messages(conversation_id: str, user_id: Optional[str]) -> list[Message]:
    """Messages oldest first. Only participants may read them."""
    await _require_participant(conversation_id, user_id)
    return await fetch_messages(conversation_id)


def _recency_key(conversation: Conversation):
    # Conversations without messages sort after everything else
    return (conversation.last_message_time is not None, conversation.last_message_time or "")


async def fetch_conversations(user_id: str) -> list[Conversation]:
    rows = await get_conversations_for_user(user_id)
    conversations = [Conversation(**row) for row in rows]
    conversations.sort(key=_recency_key, reverse=True)
    return conversations


async def list_conversations(user_id: Optional[str]) -> list[dict]:
    """Inbox for a user: newest activity first, with the other participant's profile."""
    if not user_id:
        raise AuthenticationRequiredError("Please log in to see your messages")

    conversations = await fetch_conversations(user_id)
    other_ids = [c.other_participant(user_id) for c in conversations]
    profiles = await get_profiles([other for other in other_ids if other])

    inbox = []
    for conversation, other_id in zip(conversations, other_ids):
        profile = profiles.get(other_id)
        inbox.append({
            **conversation.model_dump(mode="json"),
            "other_user": {
                "user_id": other_id,
                "name": profile.public_name if profile else "User",
                "photo_url": profile.photo_url if profile else None,
            },
        })
    return inbox
