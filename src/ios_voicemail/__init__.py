"""Voicemail recovery from iOS device backups."""
