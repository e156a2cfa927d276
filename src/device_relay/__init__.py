"""Relay chat-bot commands to paired devices over FCM push."""

__version__ = "0.1.0"
