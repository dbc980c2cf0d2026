"""Event RSVP and payment tracking."""
