"""Support ticket channels: creation, participants, transcripts and cleanup."""

# Ticket channels are named after their owner's user id
TICKET_CHANNEL_PREFIX = "ticket-"

# Seconds between the closing notice and the channel deletion
CLOSE_DELAY_SECONDS = 5.0

# Discord returns at most 100 messages per history request
TRANSCRIPT_MESSAGE_LIMIT = 100

TRANSCRIPT_PERMISSION_PLACEHOLDER = "[Transcript unavailable: missing Read Message History permission]"
TRANSCRIPT_FAILURE_PLACEHOLDER = "[Transcript unavailable: failed to fetch messages]"

DELETE_REASON = "Ticket closed"
DELETE_FALLBACK_MESSAGE = "⚠️ Unable to delete this channel automatically. Please delete it manually."
