from modguard.analytics.recorder import AnalyticsEvent, AnalyticsRecorder

__all__ = ["AnalyticsEvent", "AnalyticsRecorder"]
