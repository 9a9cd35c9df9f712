from clipguard.models.video import Video

__all__ = ["Video"]
