"""Lecture recording access, streaming and demo grants for the LMS backend."""
