"""VidTube backend API."""
