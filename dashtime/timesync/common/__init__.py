"""Types shared between the client and server sides of time sync."""
