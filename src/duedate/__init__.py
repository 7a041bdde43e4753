# These constants are put into a _version.py file by the
# release build. If they are present, then we want to import
# them here, so they can be used by the application.

try:
    from duedate._version import __version__
except (ModuleNotFoundError, ImportError):
    __version__ = None

try:
    from duedate._version import __commit__
except (ModuleNotFoundError, ImportError):
    __commit__ = None

__all__ = ["__version__", "__commit__"]
