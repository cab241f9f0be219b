"""Artifact generators: table snapshot, composite image and photo archive."""
