"""Tender sync service: shared dataset, presence, change log and attachments."""
