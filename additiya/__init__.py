"""Session and profile synchronization client for the ADDITIYA screening app.

The ``domain`` package holds framework-agnostic models, errors and the
``Result`` type; ``services`` holds the stateful components (token storage,
session state machine, profile sync, photo upload); ``adapters`` holds the
concrete storage media and device collaborators.
"""

__version__ = "0.1.0"
