import argparse
import sys
from typing import Optional

import dosecrets
from dosecrets._output import TerminalBackend, output
from dosecrets.config import Settings
from dosecrets.utils import exit_on_signals
from dosecrets.workflow import SetupWorkflow


def main(args: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description=(
            "dosecrets v{}: interactively manage the DigitalOcean API token "
            "and SSH key pair stored in Ansible Vault. Set DOSECRETS_DEBUG=true "
            "for diagnostic output."
        ).format(dosecrets.__version__),
    )
    parser.parse_args(args)

    output.backend = TerminalBackend()
    try:
        settings = Settings.from_environ()
    except ValueError as e:
        output.error(str(e))
        sys.exit(1)
    output.enable_debug = settings.debug
    output.annotate("Starting in {}".format(settings.basedir), debug=True)

    try:
        with exit_on_signals():
            SetupWorkflow(settings).run()
    except dosecrets.ReportingException as e:
        e.report()
        sys.exit(1)
    except EOFError:
        output.line("")
        output.error("Input closed before the setup was complete.")
        sys.exit(1)
    except KeyboardInterrupt:
        output.line("")
        output.error("Aborted.")
        sys.exit(130)
    return 0
