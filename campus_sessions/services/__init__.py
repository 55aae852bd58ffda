"""Session lifecycle services: persistence, lifecycle state machine, tokens and authentication."""
