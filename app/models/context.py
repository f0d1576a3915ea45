from typing import Any, Iterator

from tortoise import fields, models

from app.models._json import json_encoder

RESERVED_KEYS = ("sessionId", "createdAt", "updatedAt")


def iter_text(value: Any) -> Iterator[str]:
    """Обходит все строковые значения документа, включая вложенные"""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_text(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_text(item)


class ConversationContext(models.Model):
    """Документ контекста сессии: последние результаты каждой возможности ассистента"""
    id = fields.IntField(primary_key=True)
    session_id = fields.CharField(max_length=255, unique=True, description="ID сессии")
    data = fields.JSONField(default=dict, encoder=json_encoder, description="Поля контекста (lastQuery, lastEvents, ...)")
    search_text = fields.TextField(default="", description="Строковые значения data в нижнем регистре, для поиска")
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "contexts"
        indexes = [
            models.Index(fields=["updated_at"], name="idx_contexts_updated_at"),
        ]

    async def save(self, *args, **kwargs) -> None:
        self.search_text = "\n".join(text.lower() for text in iter_text(self.data or {}))
        await super().save(*args, **kwargs)

    def to_document(self) -> dict:
        return {
            **(self.data or {}),
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def __str__(self):
        return f"ConversationContext(session_id={self.session_id}, fields={len(self.data or {})})"
