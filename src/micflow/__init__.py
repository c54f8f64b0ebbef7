"""micflow -- Mobile Identity Connect login for Python.

This package implements the client side of the Mobile Identity Connect
(MIC) OAuth2 authorization-code flow: it obtains an authorization code
either through a hosted login page shown in a popup or by posting user
credentials to a temporary login URL, exchanges the code for a token
and stores the resulting session as the app's active user.  It also ships
a small helper that turns discovered devices into deployment descriptors.

Typical workflow::

    micflow config set app_key kid_abc123
    micflow config set mic_host auth.example.com
    micflow login app://callback -u alice

Modules:
    app: Typer application and CLI entry point.
    auth: The MIC login flow and active-user storage.
    client: The HTTP executor used by the login flow.
    deploy: Device deployment descriptors.
    models: Pydantic models shared across the package.
    config: XDG-aware settings resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
