"""Built-in CLI commands for micflow.

* :mod:`~micflow.commands.auth` -- ``login``, ``logout`` and ``whoami``,
  registered directly on the root app.
* :mod:`~micflow.commands.config` -- the ``config`` sub-command group.
"""
