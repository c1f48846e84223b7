"""Concrete engine capabilities.

Backends are imported lazily so that ``requests`` is only needed when the
REST engine is actually used::

    from clamav_scan.backends import LibClamAVEngine, RestEngine
"""

__all__ = ["LibClamAVEngine", "RestEngine"]


def __getattr__(name: str) -> object:
    if name == "LibClamAVEngine":
        from clamav_scan.backends.libclamav import LibClamAVEngine

        return LibClamAVEngine
    if name == "RestEngine":
        from clamav_scan.backends.rest import RestEngine

        return RestEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
