from tortoise import fields, models

from app.models._json import json_encoder


class SessionCredential(models.Model):
    """Учётные данные OAuth для сессии (бэкенд session_backend=database)"""
    session_id = fields.CharField(max_length=255, primary_key=True)
    credential = fields.JSONField(encoder=json_encoder)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "session_credentials"
