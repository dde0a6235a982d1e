"""Review engine services: translation, sanitizing, validation, persistence and reads."""
