"""Proactive push outreach service: APNs delivery, device registry, and scheduling."""
