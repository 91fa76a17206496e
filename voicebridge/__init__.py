"""Telephony media stream <-> OpenAI Realtime voice bridge."""

__version__ = "3.2.0"
