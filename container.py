import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from flow_errors import MissingDependencyError
from process_runner import ProcessRunner
from run_config import Mount, RunConfiguration


@dataclass(frozen=True)
class ContainerInvocation:
    """One `docker run`, kept as data until it is turned into an argument list."""

    engine: str
    image: str
    mounts: Tuple[Mount, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    forwarded_env: Tuple[str, ...] = ()
    user: Optional[str] = None
    options: Tuple[str, ...] = ()
    interactive: bool = False
    command: Tuple[str, ...] = field(default_factory=tuple)

    def to_args(self) -> List[str]:
        args = [self.engine, "run", "--rm"]
        if self.interactive:
            args.append("-it")
        for mount in self.mounts:
            args += ["-v", str(mount)]
        for key, value in self.env:
            args += ["-e", f"{key}={value}"]
        if self.user:
            args += ["-u", self.user]
        args += list(self.options)
        for name in self.forwarded_env:
            args += ["--env", name]
        args.append(self.image)
        args += list(self.command)
        return args


def build_invocation(
    config: RunConfiguration,
    command: Sequence[str] = (),
    interactive: bool = False,
    gui: bool = False,
) -> ContainerInvocation:
    """Mounts for the sources, the PDK and OpenLane, X forwarding for GUI tools
    (e.g. openroad -gui) and $FLOWRUNNER as a reminder of the flow command.

    The X socket and authority file are only mounted for interactive or GUI
    sessions, so a headless build never binds them.
    """
    env: Dict[str, str] = config.container_env
    mounts = list(config.mounts)
    if gui or interactive:
        mounts += config.x11_mounts
    return ContainerInvocation(
        engine=config.engine,
        image=config.image,
        mounts=tuple(mounts),
        env=tuple(env.items()),
        forwarded_env=config.forwarded_env,
        user=f"{config.uid}:{config.gid}",
        options=("--net=host",),
        interactive=interactive,
        command=tuple(command),
    )


class ContainerRuntime:
    def __init__(self, engine: str, runner: ProcessRunner):
        self.engine = engine
        self.runner = runner

    def ensure_available(self):
        if shutil.which(self.engine) is None:
            raise MissingDependencyError(f"{self.engine} not found in PATH")

    def run(self, invocation: ContainerInvocation):
        self.ensure_available()
        return self.runner.run(invocation.to_args())


def merge_xauth(config: RunConfiguration, runner: ProcessRunner, display: str):
    """Copy the cookie for `display` into an authority file the container can read.

    Same as `xauth nlist $DISPLAY | sed -e 's/^..../ffff/' | xauth -f $XAUTH nmerge -`,
    the ffff family makes the cookie valid for any hostname.
    """
    if not display:
        logging.warning("DISPLAY is not set, GUI tools won't work in the container")
        return
    if shutil.which("xauth") is None:
        logging.warning("xauth not found, skipping X authority setup")
        return

    p = runner.run(["xauth", "nlist", display], capture_output=True)
    entries = [
        "ffff" + line[4:]
        for line in p.stdout.decode().splitlines()
        if len(line) > 4
    ]
    if not entries:
        logging.warning(f"no X authority entries found for display {display}")
        return
    runner.run(
        ["xauth", "-f", config.xauth, "nmerge", "-"],
        input=("\n".join(entries) + "\n").encode(),
    )
    if os.path.exists(config.xauth):
        os.chmod(config.xauth, 0o755)
