from tortoise import fields, models

from app.models._json import json_encoder


class UserPreference(models.Model):
    id = fields.IntField(primary_key=True)
    session_id = fields.CharField(max_length=255)
    key = fields.CharField(max_length=255)
    value = fields.JSONField(null=True, encoder=json_encoder)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "user_preferences"
        unique_together = (("session_id", "key"),)
