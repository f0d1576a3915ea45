"""
Синтез речи через ElevenLabs.
Если ключ не настроен, используется DisabledSpeechService, который возвращает None.
"""
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}


class SpeechService(Protocol):
    async def text_to_speech(self, text: str, voice_id: Optional[str] = None,
                             model_id: Optional[str] = None) -> Optional[bytes]: ...

    async def get_voices(self) -> List[Dict[str, Any]]: ...


class ElevenLabsSpeechService:
    def __init__(self, api_key: str, base_url: str, voice_id: str, model_id: str, timeout: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.voice_id = voice_id
        self.model_id = model_id
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key},
            timeout=self.timeout,
        )

    async def text_to_speech(self, text: str, voice_id: Optional[str] = None,
                             model_id: Optional[str] = None) -> Optional[bytes]:
        """Возвращает аудио в формате MPEG"""
        payload = {
            "text": text,
            "model_id": model_id or self.model_id,
            "voice_settings": DEFAULT_VOICE_SETTINGS,
        }
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/text-to-speech/{voice_id or self.voice_id}",
                    json=payload,
                    headers={"Accept": "audio/mpeg"},
                )
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            logger.error(f"Ошибка ElevenLabs TTS: {e}")
            raise UpstreamError(f"Text-to-speech failed: {e}") from e

    async def get_voices(self) -> List[Dict[str, Any]]:
        try:
            async with self._client() as client:
                response = await client.get("/voices")
                response.raise_for_status()
                return response.json().get("voices", [])
        except httpx.HTTPError as e:
            logger.error(f"Ошибка получения голосов ElevenLabs: {e}")
            raise UpstreamError(f"Failed to get voices: {e}") from e


class DisabledSpeechService:
    async def text_to_speech(self, text: str, voice_id: Optional[str] = None,
                             model_id: Optional[str] = None) -> Optional[bytes]:
        logger.warning("ElevenLabs TTS отключён: API ключ не настроен")
        return None

    async def get_voices(self) -> List[Dict[str, Any]]:
        return []


def build_speech_service(settings) -> SpeechService:
    if not settings.elevenlabs_api_key:
        return DisabledSpeechService()
    return ElevenLabsSpeechService(
        api_key=settings.elevenlabs_api_key,
        base_url=settings.elevenlabs_base_url,
        voice_id=settings.elevenlabs_voice_id,
        model_id=settings.elevenlabs_model_id,
    )
