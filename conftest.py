import dataclasses
import datetime
import os
import subprocess

import pytest

import container
from completion import DRC_REPORT
from flow_errors import ExternalProcessError
from process_runner import ProcessRunner
from run_config import RunConfiguration

MARCH_14 = datetime.date(2023, 3, 14)


class RecordingRunner(ProcessRunner):
    """Records commands instead of running them."""

    def __init__(self):
        self.calls = []
        self.inputs = []
        self.outputs = {}
        self.hooks = []
        self.fail_on = None

    def run(self, args, cwd=None, env=None, capture_output=False, input=None):
        args = list(args)
        self.calls.append(args)
        self.inputs.append(input)
        if self.fail_on is not None and self.fail_on in args:
            raise ExternalProcessError(args, 2)
        for hook in self.hooks:
            hook(args)
        stdout = b""
        for key, output in self.outputs.items():
            if key in args:
                stdout = output
        return subprocess.CompletedProcess(args, 0, stdout, b"")

    def calls_with(self, word):
        return [call for call in self.calls if word in call]


@pytest.fixture
def workdir(tmp_path):
    """A project under OpenLane/designs/ with the helper cloned and configured."""
    project = tmp_path / "OpenLane" / "designs" / "myproject"
    (project / "src").mkdir(parents=True)
    (project / "src" / "user_config.tcl").write_text("set ::env(DESIGN_NAME) test\n")
    (project / "tt").mkdir()
    return project


@pytest.fixture
def config(workdir, tmp_path):
    config = RunConfiguration.resolve({}, str(workdir), MARCH_14, uid=1000, gid=1000)
    return dataclasses.replace(config, xauth=str(tmp_path / "docker.xauth"))


@pytest.fixture
def runner():
    return RecordingRunner()


@pytest.fixture
def docker_installed(monkeypatch):
    monkeypatch.setattr(container.shutil, "which", lambda name: f"/usr/bin/{name}")


def write_marker(run_dir):
    marker = os.path.join(run_dir, DRC_REPORT)
    os.makedirs(os.path.dirname(marker), exist_ok=True)
    with open(marker, "w") as fh:
        fh.write("[INFO]: COUNT: 0\n")
    return marker


@pytest.fixture
def simulated_flow(runner, workdir):
    """Make ./flow.tcl invocations create the signoff report of their tag."""

    def hook(args):
        if "./flow.tcl" in args:
            tag = args[args.index("-tag") + 1]
            write_marker(os.path.join(workdir, "runs", tag))

    runner.hooks.append(hook)
    return runner
