import logging
import shlex
import subprocess
from typing import Mapping, Optional, Sequence

from flow_errors import ExternalProcessError, MissingDependencyError


class ProcessRunner:
    """Runs one external command and waits for it.

    A non-zero exit status raises `ExternalProcessError`; the command's own
    output is left on the terminal unless `capture_output` is set.
    """

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        capture_output: bool = False,
        input: Optional[bytes] = None,
    ) -> subprocess.CompletedProcess:
        raise NotImplementedError()


class SubprocessRunner(ProcessRunner):
    def run(self, args, cwd=None, env=None, capture_output=False, input=None):
        logging.debug(shlex.join(args))
        try:
            p = subprocess.run(
                list(args),
                cwd=cwd,
                env=None if env is None else dict(env),
                capture_output=capture_output,
                input=input,
            )
        except FileNotFoundError as e:
            raise MissingDependencyError(f"{args[0]} not found") from e
        if p.returncode != 0:
            if capture_output and p.stderr:
                logging.error(p.stderr.decode(errors="replace").strip())
            raise ExternalProcessError(args, p.returncode)
        return p


class DryRunRunner(ProcessRunner):
    """Print the commands that would be run, like `make -n`."""

    def run(self, args, cwd=None, env=None, capture_output=False, input=None):
        location = f" (in {cwd})" if cwd else ""
        logging.info(f"would run{location}: {shlex.join(args)}")
        return subprocess.CompletedProcess(list(args), 0, b"", b"")
