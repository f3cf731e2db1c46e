"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system.

Two vocabularies live here:
- Triggers: domain occurrences automation rules can listen for
  (lower_snake, stored on Automation.trigger)
- Outbound types: envelopes pushed to WebSocket subscribers
  (UPPER_SNAKE, the "type" field of every frame)
"""

# ─── Automation triggers ─────────────────────────────────

JOB_COMPLETED = "job_completed"
NEW_CUSTOMER = "new_customer"
NEW_MESSAGE = "new_message"
APPOINTMENT_SCHEDULED = "appointment_scheduled"
CUSTOM = "custom"

TRIGGERS = (
    JOB_COMPLETED,
    NEW_CUSTOMER,
    NEW_MESSAGE,
    APPOINTMENT_SCHEDULED,
    CUSTOM,
)

# ─── Outbound realtime frames ────────────────────────────

NEW_CHAT_MESSAGE = "NEW_CHAT_MESSAGE"
MESSAGE_READ = "MESSAGE_READ"
NEW_REVIEW = "NEW_REVIEW"
JOB_STATUS_CHANGE = "JOB_STATUS_CHANGE"
AUTOMATION_TRIGGERED = "AUTOMATION_TRIGGERED"

# Sent once, directly, to a freshly opened operator connection.
INITIAL_STATS = "INITIAL_STATS"
