from .session import LivenessSession, Signal, SIGNAL_STATES

__all__ = ["LivenessSession", "Signal", "SIGNAL_STATES"]
