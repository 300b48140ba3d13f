"""
LOGGING CONFIGURATION TESTS

Importing the package never touches the host's logging setup; only an
explicit setup_logging() call installs handlers, and only its own.
"""
import logging
import subprocess
import sys
import textwrap

from behavioral_sandbox.logging_config import setup_logging


class TestHostLoggingUntouched:
    def test_import_keeps_host_root_handler(self):
        """
        SCENARIO: host installs a root handler, then imports the services

        EXPECTED: the host handler and level are still there
        """
        script = textwrap.dedent(
            """
            import logging

            host = logging.StreamHandler()
            host.set_name("host")
            root = logging.getLogger()
            root.addHandler(host)
            root.setLevel(logging.ERROR)

            import behavioral_sandbox.sandbox_service
            import behavioral_sandbox.display_service
            import behavioral_sandbox.reflection_service
            import behavioral_sandbox.main

            print([h.get_name() for h in root.handlers], logging.getLevelName(root.level))
            """
        )
        completed = subprocess.run(
            [sys.executable, "-c", script], capture_output=True, text=True, check=True
        )
        assert completed.stdout.strip() == "['host'] ERROR"

    def test_setup_keeps_foreign_handlers_and_replaces_its_own(self):
        root = logging.getLogger()
        host = logging.NullHandler()
        root.addHandler(host)
        before = len(root.handlers)
        try:
            setup_logging(level="WARNING")
            setup_logging(level="WARNING")

            assert host in root.handlers
            assert len(root.handlers) == before
        finally:
            root.removeHandler(host)
