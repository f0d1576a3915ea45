from tortoise import fields, models

from app.models._json import json_encoder


class ConversationTurn(models.Model):
    """Одна реплика диалога. Записи только добавляются"""
    id = fields.IntField(primary_key=True)
    session_id = fields.CharField(max_length=255, description="ID сессии")
    role = fields.CharField(max_length=20, description="user / assistant")
    content = fields.TextField(null=True, description="Текст реплики")
    method = fields.CharField(max_length=64, null=True, description="Метод командного протокола")
    metadata = fields.JSONField(null=True, encoder=json_encoder, description="Полный ответ ассистента")
    timestamp = fields.DatetimeField(auto_now_add=True, description="Время записи (назначается сервером)")

    class Meta:
        table = "conversation_turns"
        indexes = [
            models.Index(fields=["session_id", "timestamp"], name="idx_turns_session_timestamp"),
        ]

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "role": self.role,
            "content": self.content,
            "method": self.method,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self):
        preview = (self.content or "")[:50]
        return f"ConversationTurn(id={self.id}, session_id={self.session_id}, role={self.role}, text='{preview}...')"
