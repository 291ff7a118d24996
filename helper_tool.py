import logging
import os
from typing import List

import git

from flow_errors import ExternalProcessError, MissingDependencyError
from process_runner import ProcessRunner
from run_config import RunConfiguration

# report sections of the summary file, in order
REPORT_FLAGS = ["--print-warnings", "--print-stats", "--print-cell-category"]


class HelperTool:
    """The Tiny Tapeout support tools, cloned into tt/ and run from the project dir."""

    def __init__(self, config: RunConfiguration, runner: ProcessRunner, dry_run=False):
        self.config = config
        self.runner = runner
        self.dry_run = dry_run

    def is_present(self) -> bool:
        return os.path.isdir(self.config.helper_dir)

    # get the TinyTapeout tools and install reqs
    def fetch(self):
        if self.is_present():
            logging.debug(f"{self.config.helper_dir} already exists")
            return

        logging.info(f"cloning {self.config.helper_repo} to {self.config.helper_dir}")
        if self.dry_run:
            logging.info(f"would clone {self.config.helper_repo}")
        else:
            try:
                git.Repo.clone_from(
                    self.config.helper_repo, self.config.helper_dir, depth=1
                )
            except git.GitCommandError as e:
                logging.error(str(e))
                status = e.status if isinstance(e.status, int) else 1
                raise ExternalProcessError(
                    ["git", "clone", self.config.helper_repo, self.config.helper_dir],
                    status,
                ) from e

        requirements = os.path.join(self.config.helper_dir, "requirements.txt")
        self.runner.run(
            [self.config.python_bin, "-m", "pip", "install", "-r", requirements]
        )

    def require(self):
        if not self.is_present() and not self.dry_run:
            raise MissingDependencyError(
                f"helper tool not found in {self.config.helper_dir}, run fetch-helper first"
            )

    def command(self, *flags: str) -> List[str]:
        return [self.config.python_bin, self.config.helper_script, *flags]

    def run(self, *flags: str, capture_output=False):
        self.require()
        return self.runner.run(
            self.command(*flags), cwd=self.config.workdir, capture_output=capture_output
        )

    def create_user_config(self):
        self.run("--create-user-config")

    def report(self, flag: str) -> str:
        p = self.run(
            "--run-dir", self.config.run_dir_relative, flag, capture_output=True
        )
        return p.stdout.decode()

    def create_png(self):
        self.run("--run-dir", self.config.run_dir_relative, "--create-png")
