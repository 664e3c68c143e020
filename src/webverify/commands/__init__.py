"""Built-in CLI commands for webverify.

* :mod:`~webverify.commands.configure` -- write the client registration.
* :mod:`~webverify.commands.session` -- ``verify`` and ``logout``, the two
  commands that open the browser.
* :mod:`~webverify.commands.tokens` -- ``token``, ``profile`` and ``status``.

Each module exposes plain callbacks that :mod:`webverify.app` registers on
the root application. Shared client construction lives in
:mod:`~webverify.commands.common`.
"""
