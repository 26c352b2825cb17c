"""Direct and group messaging between users.

Layout:
    chatUsers/{uid}
    conversations/{conversationId}
    conversations/{conversationId}/messages/{messageId}

Reads are plain queries; clients poll list_conversations and list_messages.
"""

from __future__ import annotations

import logging
from typing import Any

from internly.auth import AuthSession
from internly.docstore import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    ArrayRemove,
    DocumentStore,
    Increment,
    doc_path,
)
from internly.errors import BestEffort, NotFoundError, best_effort
from internly.models import ChatUser, Conversation, Message

logger = logging.getLogger(__name__)

CHAT_USERS = "chatUsers"
CONVERSATIONS = "conversations"
MESSAGES = "messages"

SYSTEM_SENDER = "system"
IMAGE_PREVIEW = "📷 Image"

MESSAGE_PAGE_SIZE = 200
SEEN_BATCH_LIMIT = 400


def _messages(conversation_id: str) -> str:
    return doc_path(CONVERSATIONS, conversation_id, MESSAGES)


class ChatService:
    def __init__(self, db: DocumentStore, session: AuthSession | None = None):
        self.db = db
        self.session = session

    def resolve_uid(self, fallback: str | None = None) -> str:
        uid = (self.session.current_uid if self.session else None) or fallback
        if not uid:
            raise ValueError("No active session and no user id supplied")
        return uid

    # ── Chat users ────────────────────────────────────────────

    def upsert_chat_user(self, user: ChatUser) -> str:
        uid = self.resolve_uid(user.uid)
        self.db.set(doc_path(CHAT_USERS, uid), {
            "uid": uid,
            "name": user.name,
            "email": user.email,
            "profileImage": user.profile_image,
            "online": True,
            "lastSeen": SERVER_TIMESTAMP,
        }, merge=True)
        return uid

    def get_chat_user(self, uid: str) -> ChatUser | None:
        data = self.db.get(doc_path(CHAT_USERS, uid))
        return ChatUser.from_dict({"uid": uid, **data}) if data is not None else None

    def list_chat_users(self) -> list[ChatUser]:
        return [ChatUser.from_dict({"uid": s.id, **s.data}) for s in self.db.query(CHAT_USERS)]

    def set_online_status(self, uid: str, online: bool) -> None:
        self.db.update(doc_path(CHAT_USERS, self.resolve_uid(uid)), {
            "online": online,
            "lastSeen": SERVER_TIMESTAMP,
        })

    # ── Conversations ─────────────────────────────────────────

    def get_conversation(self, conversation_id: str) -> Conversation:
        data = self.db.get(doc_path(CONVERSATIONS, conversation_id))
        if data is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        return Conversation.from_dict(data, doc_id=conversation_id)

    def get_or_create_conversation(self, me: ChatUser, other: ChatUser) -> str:
        """Id of the conversation holding both users, created on first contact."""
        my_uid = self.resolve_uid(me.uid)
        for snap in self.db.query(CONVERSATIONS, where=[("participants", "array_contains", my_uid)]):
            if other.uid in snap.data.get("participants", []):
                return snap.id

        conversation_id = self.db.add(CONVERSATIONS, {
            "participants": [my_uid, other.uid],
            "participantDetails": {my_uid: me.details(), other.uid: other.details()},
            "lastMessage": None,
            "lastMessageTime": SERVER_TIMESTAMP,
            "lastMessageSenderId": None,
            "unreadCount": {my_uid: 0, other.uid: 0},
        })
        logger.info("Started conversation %s between %s and %s", conversation_id, my_uid, other.uid)
        return conversation_id

    def create_group_conversation(self, me: ChatUser, members: list[ChatUser], name: str) -> str:
        if not name.strip():
            raise ValueError("Group name is required")
        if not members:
            raise ValueError("A group needs at least one other member")
        my_uid = self.resolve_uid(me.uid)

        details: dict[str, Any] = {my_uid: me.details()}
        unread = {my_uid: 0}
        for member in members:
            details[member.uid] = member.details()
            unread[member.uid] = 0

        return self.db.add(CONVERSATIONS, {
            "participants": [my_uid] + [m.uid for m in members if m.uid != my_uid],
            "participantDetails": details,
            "lastMessage": f"{me.name} created the group",
            "lastMessageTime": SERVER_TIMESTAMP,
            "lastMessageSenderId": None,
            "unreadCount": unread,
            "isGroup": True,
            "groupName": name.strip(),
            "groupAvatar": None,
            "createdBy": my_uid,
        })

    def list_conversations(self, uid: str) -> list[Conversation]:
        """Conversations the user takes part in, most recent activity first."""
        uid = self.resolve_uid(uid)
        snaps = self.db.query(CONVERSATIONS, where=[("participants", "array_contains", uid)])
        conversations = [Conversation.from_dict(s.data, doc_id=s.id) for s in snaps]
        conversations.sort(key=lambda c: c.last_message_time, reverse=True)
        return conversations

    # ── Messages ──────────────────────────────────────────────

    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        recipients: str | list[str],
        text: str | None = None,
        image_url: str | None = None,
    ) -> str:
        """Write a message, then best-effort refresh the conversation summary."""
        if not text and not image_url:
            raise ValueError("A message needs text or an image")
        sender = self.resolve_uid(sender_id)
        message_id = self.db.add(_messages(conversation_id), {
            "senderId": sender,
            "text": text or None,
            "imageUrl": image_url or None,
            "timestamp": SERVER_TIMESTAMP,
            "read": False,
            "status": "sent",
            "readBy": {sender: True},
        })

        others = [recipients] if isinstance(recipients, str) else list(recipients)
        fields: dict[str, Any] = {
            "lastMessage": IMAGE_PREVIEW if image_url else (text or ""),
            "lastMessageTime": SERVER_TIMESTAMP,
            "lastMessageSenderId": sender,
            f"typing.{sender}": DELETE_FIELD,
        }
        for uid in others:
            fields[f"unreadCount.{uid}"] = Increment(1)
        best_effort("conversation metadata update", self.db.update, doc_path(CONVERSATIONS, conversation_id), fields)
        return message_id

    def list_messages(self, conversation_id: str, limit: int = MESSAGE_PAGE_SIZE) -> list[Message]:
        snaps = self.db.query(_messages(conversation_id), order_by="timestamp", limit=limit)
        return [Message.from_dict(s.data, doc_id=s.id) for s in snaps]

    def mark_conversation_read(self, conversation_id: str, uid: str) -> None:
        uid = self.resolve_uid(uid)
        self.db.update(doc_path(CONVERSATIONS, conversation_id), {f"unreadCount.{uid}": 0})

    def mark_messages_seen(self, conversation_id: str, uid: str, messages: list[Message]) -> int:
        """Flag other people's unseen messages as seen by *uid*. Returns how many."""
        uid = self.resolve_uid(uid)
        batch = self.db.batch()
        for message in messages:
            if message.sender_id == uid or message.read_by.get(uid):
                continue
            batch.update(doc_path(_messages(conversation_id), message.id), {
                f"readBy.{uid}": True,
                "status": "seen",
            })
            if len(batch) >= SEEN_BATCH_LIMIT:
                break
        return batch.commit()

    # ── Conversation details ──────────────────────────────────

    def set_typing_status(self, conversation_id: str, uid: str, is_typing: bool) -> BestEffort[None]:
        uid = self.resolve_uid(uid)
        value = SERVER_TIMESTAMP if is_typing else DELETE_FIELD
        return best_effort(
            "typing status", self.db.update, doc_path(CONVERSATIONS, conversation_id), {f"typing.{uid}": value},
        )

    def kick_group_member(self, conversation_id: str, target_uid: str, actor_uid: str | None = None) -> None:
        """Remove a member from a group. Only the group's creator may do this."""
        actor = self.resolve_uid(actor_uid)
        conversation = self.get_conversation(conversation_id)
        if conversation.created_by != actor:
            raise ValueError("Only the group creator can kick members")
        if target_uid == actor:
            raise ValueError("You cannot kick yourself")
        if target_uid not in conversation.participants:
            raise ValueError("User is not in this group")

        path = doc_path(CONVERSATIONS, conversation_id)
        self.db.update(path, {
            "participants": ArrayRemove(target_uid),
            f"participantDetails.{target_uid}": DELETE_FIELD,
            f"unreadCount.{target_uid}": DELETE_FIELD,
            f"nicknames.{target_uid}": DELETE_FIELD,
            f"typing.{target_uid}": DELETE_FIELD,
        })

        kicked = conversation.participant_details.get(target_uid, {}).get("name") or "A member"
        notice = f"{kicked} was removed from the group"
        self.db.add(_messages(conversation_id), {
            "senderId": SYSTEM_SENDER,
            "text": notice,
            "imageUrl": None,
            "timestamp": SERVER_TIMESTAMP,
            "read": True,
            "status": "seen",
            "readBy": {},
        })
        self.db.update(path, {
            "lastMessage": notice,
            "lastMessageTime": SERVER_TIMESTAMP,
            "lastMessageSenderId": None,
        })
        logger.info("%s removed %s from %s", actor, target_uid, conversation_id)

    def set_nickname(self, conversation_id: str, target_uid: str, nickname: str) -> None:
        """Set a participant's nickname; a blank nickname clears it."""
        self.db.update(doc_path(CONVERSATIONS, conversation_id), {f"nicknames.{target_uid}": nickname.strip()})
