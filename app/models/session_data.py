from tortoise import fields, models

from app.models._json import json_encoder


class SessionData(models.Model):
    """Произвольные данные сессии; удаляются вместе с контекстом"""
    id = fields.IntField(primary_key=True)
    session_id = fields.CharField(max_length=255, unique=True)
    data = fields.JSONField(default=dict, encoder=json_encoder)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "session_data"

    def to_document(self) -> dict:
        return {
            **(self.data or {}),
            "sessionId": self.session_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
