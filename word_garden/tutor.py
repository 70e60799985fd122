"""Proxy to the AI tutor, with every exchange recorded in the chat history."""

import logging
import os
from typing import Any, Dict, List, Optional

from openai import OpenAI, OpenAIError

from . import db, accounts
from .errors import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

AI_TUTOR_BASE_URL = os.environ.get("AI_TUTOR_BASE_URL", "https://api.aass.cc/v1")
AI_TUTOR_MODEL = os.environ.get("AI_TUTOR_MODEL", "gpt-4o-mini")
AI_TUTOR_TIMEOUT = float(os.environ.get("AI_TUTOR_TIMEOUT", "60"))

SYSTEM_PROMPT = (
    "你是一位耐心的一年级辅导老师。你的任务是帮助小朋友理解问题，而不是直接给出答案。"
    "请使用亲切、简单、富有鼓励性的语言。重要规则："
    "1. 禁止使用 ###, ---, > 等复杂的 Markdown 符号。"
    "2. 使用简单的空格和换行来分段。"
    "3. 重点词汇可以用少量的加粗，但不要大面积使用。"
    "4. 保持回答简洁，每次只专注于解释一个知识点，不要一次给太多信息。"
    "5. 回复中不要包含任何代码块或编程相关的特殊字符。"
)


def _record(user_id: int, role: str, content: str, image: Optional[str] = None) -> int:
    with db.transaction() as session:
        msg = db.ChatMessage(user_id=user_id, role=role, content=content, image_data=image)
        session.add(msg)
        session.flush()
        return msg.id


def _build_messages(prompt: str, image: Optional[str]) -> List[Dict[str, Any]]:
    content: List[Dict[str, Any]] = []
    if prompt:
        content.append({"type": "text", "text": prompt})
    if image:
        # Accept both a bare base64 string and a data URL
        data = image.split(",", 1)[1] if "," in image else image
        content.append({"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{data}"}})
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": content},
    ]


def ask_tutor(user_id: Any, prompt: Optional[str] = None, image: Optional[str] = None,
              model: Optional[str] = None) -> str:
    """Send a question (text and/or photo) to the tutor and return its reply.

    The question is stored before the call and the reply after it. A failed
    call leaves the stored question in place and raises ExternalServiceError.
    """
    if not user_id:
        raise ValidationError("Missing user")
    if not prompt and not image:
        raise ValidationError("A prompt or an image is required")
    if (prompt and not isinstance(prompt, str)) or (image and not isinstance(image, str)):
        raise ValidationError("prompt and image must be strings")
    api_key = accounts.get_api_key(user_id)
    if not api_key:
        raise ValidationError("No API key configured for this account")

    uid = int(user_id)
    _record(uid, "user", prompt or "", image)

    client = OpenAI(api_key=api_key, base_url=AI_TUTOR_BASE_URL, timeout=AI_TUTOR_TIMEOUT)
    try:
        response = client.chat.completions.create(
            model=model or AI_TUTOR_MODEL,
            messages=_build_messages(prompt or "", image),  # type: ignore
            temperature=0.7,
        )
        reply = response.choices[0].message.content or ""
    except OpenAIError as e:
        logger.error("AI tutor call failed for user %s: %s", uid, e)
        raise ExternalServiceError(str(e) or "The AI tutor is unavailable") from e

    _record(uid, "ai", reply)
    return reply


def list_history(user_id: Any) -> List[Dict[str, Any]]:
    session = db.get_session()
    try:
        db.require_user(session, user_id)
        rows = (
            session.query(db.ChatMessage)
            .filter_by(user_id=int(user_id))
            .order_by(db.ChatMessage.created_at.asc(), db.ChatMessage.id.asc())
            .all()
        )
        return [
            {
                "id": r.id,
                "role": r.role,
                "content": r.content,
                "image_data": r.image_data,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]
    finally:
        session.close()


def delete_history(user_id: Any, message_id: Optional[Any] = None) -> int:
    """Delete one message, or the whole history when no id is given."""
    with db.transaction() as session:
        db.require_user(session, user_id)
        query = session.query(db.ChatMessage).filter_by(user_id=int(user_id))
        if message_id is not None:
            query = query.filter_by(id=int(message_id))
        deleted = query.delete(synchronize_session=False)
    if message_id is not None and deleted == 0:
        raise NotFoundError(f"Message {message_id} not found")
    return deleted
