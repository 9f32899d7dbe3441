"""MediQueue: same-day token queues for clinical consultations."""

__version__ = "1.0.0"
