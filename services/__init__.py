"""Application services: persistence gateway, remote store client and server, sessions, settings and logging."""
