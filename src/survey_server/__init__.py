"""survey_server — FastAPI REST API for database-backed surveys.

Serves the survey definition with URL parameters interpolated, relays
form events to the dynamic-field SDK, and stores completed responses.
One in-memory ``FormSession`` per browser session; progress is saved
server-side so a reload can resume.
"""
