from __future__ import annotations
import logging
from typing import Optional

from google.cloud import speech_v1p1beta1 as speech
from google.api_core.exceptions import GoogleAPIError

from .settings import settings

logger = logging.getLogger(__name__)


def _recognition_config(content_type: str) -> speech.RecognitionConfig:
	# Browser recorders produce Opus in WebM/Ogg; anything else is left to auto-detection (WAV/FLAC headers)
	kind = (content_type or "").split(";", 1)[0].strip().lower()
	encoding = speech.RecognitionConfig.AudioEncoding.ENCODING_UNSPECIFIED
	sample_rate = None
	if kind == "audio/webm":
		encoding = speech.RecognitionConfig.AudioEncoding.WEBM_OPUS
		sample_rate = 48000
	elif kind == "audio/ogg":
		encoding = speech.RecognitionConfig.AudioEncoding.OGG_OPUS
		sample_rate = 48000
	config = speech.RecognitionConfig(
		encoding=encoding,
		language_code=settings.speech_language_code,
		model="default",
		enable_automatic_punctuation=True,
	)
	if sample_rate:
		config.sample_rate_hertz = sample_rate
	return config


def transcribe(audio_content: bytes, content_type: str) -> Optional[str]:
	"""Transcribe a recorded answer with Google Cloud Speech-to-Text.

	Returns None when transcription is disabled or the service fails; callers
	then keep the transcript captured by the browser.
	"""
	if not settings.speech_transcription_enabled or not audio_content:
		return None
	try:
		client = speech.SpeechClient()
	except Exception as e:
		logger.warning("Speech client unavailable: %s", e)
		return None

	audio = speech.RecognitionAudio(content=audio_content)
	try:
		response = client.recognize(config=_recognition_config(content_type), audio=audio)
	except GoogleAPIError as e:
		logger.warning("Speech recognition failed: %s", e)
		return None

	parts = [result.alternatives[0].transcript.strip() for result in response.results if result.alternatives]
	return " ".join(part for part in parts if part)
