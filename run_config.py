import datetime
import os
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from config_utils import ConfigFileError, find_config, read_config_file

CONFIG_BASENAME = "flow_config"
HELPER_REPO = "https://github.com/TinyTapeout/tt-support-tools.git"

# settings that may come from the environment or from flow_config.{yaml,json}
SETTINGS = (
    "OPENLANE_ROOT",
    "PDK_ROOT",
    "PDK",
    "OPENLANE_IMAGE_NAME",
    "FLOW_RUN_TAG",
    "INFOFILE",
    "OPENLANE_SRC_WORKDIR",
    "PYTHON_BIN",
    "CONTAINER_ENGINE",
    "TT_TOOLS_REPO",
)

# x windows stuff for interactive sessions and viewers
XSOCK = "/tmp/.X11-unix"
XAUTH = "/tmp/.docker.xauth"


def default_run_tag(today: datetime.date) -> str:
    return "run" + today.strftime("%m%d")


@dataclass(frozen=True)
class Mount:
    host_path: str
    container_path: str

    def __str__(self):
        return f"{self.host_path}:{self.container_path}"


@dataclass(frozen=True)
class RunConfiguration:
    """Everything an operation needs to know about the project and the run.

    Built once at startup by `RunConfiguration.resolve` and passed to every
    operation, so two configurations with equal fields always produce the same
    container invocations.
    """

    workdir: str
    openlane_root: str
    pdk_root: str
    tag: str
    pdk: str = "sky130A"
    image: str = "efabless/openlane"
    engine: str = "docker"
    src_workdir: str = "/work"
    python_bin: str = "python3"
    helper_repo: str = HELPER_REPO
    uid: int = 0
    gid: int = 0
    info_file: Optional[str] = None
    forwarded_env: Tuple[str, ...] = ("DISPLAY",)
    xsock: str = XSOCK
    xauth: str = XAUTH
    sources: Dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def resolve(
        cls,
        environ: Mapping[str, str],
        cwd: str,
        today: datetime.date,
        workdir: Optional[str] = None,
        tag: Optional[str] = None,
        config_file: Optional[str] = None,
        uid: Optional[int] = None,
        gid: Optional[int] = None,
    ) -> "RunConfiguration":
        """Defaults < flow_config file < environment < explicit arguments."""
        workdir = os.path.abspath(
            os.path.join(cwd, workdir or environ.get("WORKDIR") or ".")
        )

        settings: Dict[str, str] = {}
        sources: Dict[str, str] = {}

        if config_file is None:
            config_file = find_config(os.path.join(workdir, CONFIG_BASENAME))
        elif not os.path.exists(config_file):
            raise ConfigFileError(f"Configuration file {config_file} not found")
        if config_file is not None:
            file_settings = read_config_file(config_file)
            unknown = sorted(set(file_settings) - set(SETTINGS))
            if unknown:
                raise ConfigFileError(
                    f"Unknown keys in {config_file}: {', '.join(unknown)}"
                )
            for key, value in file_settings.items():
                settings[key] = str(value)
                sources[key] = config_file

        for key in SETTINGS:
            if environ.get(key):
                settings[key] = environ[key]
                sources[key] = "environment"

        if tag:
            settings["FLOW_RUN_TAG"] = tag
            sources["FLOW_RUN_TAG"] = "command line"

        # dumb way to get an exact directory, no symlinks or ../
        openlane_root = os.path.realpath(
            settings.get("OPENLANE_ROOT", os.path.join(workdir, "..", ".."))
        )
        pdk_root = settings.get("PDK_ROOT", os.path.join(openlane_root, "pdks"))
        run_tag = settings.get("FLOW_RUN_TAG", default_run_tag(today))
        if not run_tag or "/" in run_tag or run_tag in (".", ".."):
            raise ConfigFileError(f"Invalid run tag: '{run_tag}'")

        return cls(
            workdir=workdir,
            openlane_root=openlane_root,
            pdk_root=pdk_root,
            tag=run_tag,
            pdk=settings.get("PDK", cls.pdk),
            image=settings.get("OPENLANE_IMAGE_NAME", cls.image),
            engine=settings.get("CONTAINER_ENGINE", cls.engine),
            src_workdir=settings.get("OPENLANE_SRC_WORKDIR", cls.src_workdir),
            python_bin=settings.get("PYTHON_BIN", cls.python_bin),
            helper_repo=settings.get("TT_TOOLS_REPO", cls.helper_repo),
            uid=os.getuid() if uid is None else uid,
            gid=os.getgid() if gid is None else gid,
            info_file=settings.get("INFOFILE"),
            sources=sources,
        )

    def with_tag(self, tag: Optional[str]) -> "RunConfiguration":
        if not tag or tag == self.tag:
            return self
        values = {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if name not in ("tag", "info_file")
        }
        return RunConfiguration(tag=tag, **values)

    # paths on the host

    @property
    def run_dir_relative(self) -> str:
        return f"runs/{self.tag}"

    @property
    def runs_dir(self) -> str:
        return os.path.join(self.workdir, "runs")

    @property
    def run_dir(self) -> str:
        return os.path.join(self.runs_dir, self.tag)

    @property
    def summary_file(self) -> str:
        if self.info_file:
            return os.path.join(self.workdir, self.info_file)
        return os.path.join(self.workdir, f"summary-info-{self.tag}.txt")

    @property
    def render_image(self) -> str:
        return os.path.join(self.workdir, "gds_render.png")

    @property
    def helper_dir(self) -> str:
        return os.path.join(self.workdir, "tt")

    @property
    def helper_script(self) -> str:
        return os.path.join(self.helper_dir, "tt_tool.py")

    @property
    def user_config(self) -> str:
        return os.path.join(self.workdir, "src", "user_config.tcl")

    # the container side

    def container_path(self, host_path: str) -> str:
        """Map a path below the working directory to its location in the container."""
        relative = os.path.relpath(host_path, self.workdir)
        if relative == os.curdir:
            return self.src_workdir
        if relative.startswith(os.pardir):
            raise ValueError(f"{host_path} is outside of {self.workdir}")
        return f"{self.src_workdir}/{relative.replace(os.sep, '/')}"

    @property
    def flow_command(self) -> List[str]:
        """The call to flow.tcl, inside the OpenLane container."""
        return [
            "./flow.tcl",
            "-overwrite",
            "-design",
            f"{self.src_workdir}/src",
            "-run_path",
            f"{self.src_workdir}/runs",
            "-tag",
            self.tag,
        ]

    @property
    def mounts(self) -> List[Mount]:
        return [
            Mount(self.openlane_root, "/openlane"),
            Mount(self.pdk_root, self.pdk_root),
            Mount(self.workdir, self.src_workdir),
        ]

    @property
    def x11_mounts(self) -> List[Mount]:
        """X socket and authority file, only bound for GUI sessions."""
        return [Mount(self.xsock, self.xsock), Mount(self.xauth, self.xauth)]

    @property
    def container_env(self) -> Dict[str, str]:
        return {
            "PDK_ROOT": self.pdk_root,
            "PDK": self.pdk,
            "XAUTHORITY": self.xauth,
            "FLOWRUNNER": shlex.join(self.flow_command),
        }
