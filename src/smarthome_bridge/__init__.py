"""Smart-home bridge: OAuth2-style authorization for a voice-assistant cloud."""

__version__ = "0.4.0"
