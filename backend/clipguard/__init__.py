"""Asynchronous content-safety classification for uploaded videos."""
