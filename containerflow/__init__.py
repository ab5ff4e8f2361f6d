# =============================================================================
# containerflow/__init__.py
# ContainerFlow offline sync client
# =============================================================================

__version__ = "1.0.0"
