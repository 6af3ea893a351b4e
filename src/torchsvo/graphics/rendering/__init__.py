from ._volume_render import volume_render

__all__ = [
    "volume_render",
]
