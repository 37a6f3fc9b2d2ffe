"""crashpad-build: builds the Crashpad crash-reporting library for linking.

Turns a Crashpad checkout into a static archive, a ctypes binding module and
the out-of-process crashpad_handler executable, and reports link metadata to
the enclosing build orchestrator on standard output.
"""

__version__ = "0.2.7"
