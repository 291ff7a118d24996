import glob
import logging
import os
import shutil
from typing import List, Literal, Mapping, Optional, Tuple

import chevron

from completion import CompletionCheck, MarkerFileCompletionCheck
from container import ContainerRuntime, build_invocation, merge_xauth
from flow_errors import PreconditionError
from helper_tool import REPORT_FLAGS, HelperTool
from process_runner import ProcessRunner
from run_config import RunConfiguration

SCRIPT_DIR = os.path.dirname(os.path.realpath(__file__))

RunState = Literal["not built", "built", "summarized"]


def load_template(name: str) -> str:
    with open(os.path.join(SCRIPT_DIR, "templates", name)) as fh:
        return fh.read()


class FlowRunner:
    """Runs the OpenLane flow for one project and one run tag.

    Every operation is one or more blocking calls to the container engine or to
    the helper tool. There is no locking: two runners working on the same tag
    at the same time will trample on each other's output.
    """

    def __init__(
        self,
        config: RunConfiguration,
        runner: ProcessRunner,
        completion: Optional[CompletionCheck] = None,
        dry_run: bool = False,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config = config
        self.runner = runner
        self.dry_run = dry_run
        self.environ = os.environ if environ is None else environ
        self.completion = completion or MarkerFileCompletionCheck()
        self.helper = HelperTool(config, runner, dry_run=dry_run)
        self.runtime = ContainerRuntime(config.engine, runner)

    def __str__(self):
        return f"{self.config.workdir} [{self.config.tag}]"

    # setup

    def fetch_helper(self):
        self.helper.fetch()

    def generate_user_config(self):
        self.fetch_helper()
        if os.path.exists(self.config.user_config):
            logging.info(
                f"{self.config.user_config} already exists, delete it to regenerate"
            )
            return
        logging.info("creating user config")
        self.helper.create_user_config()

    # the flow

    def is_built(self) -> bool:
        return self.completion.is_complete(self.config)

    def precondition_failed(self, msg: str):
        """Raise, or only warn when printing what a dry run would do."""
        if self.dry_run:
            logging.warning(msg)
            return
        raise PreconditionError(msg)

    def require_built(self):
        if not self.is_built():
            self.precondition_failed(
                f"run {self.config.tag} has not been built, run build first"
            )

    def build(self) -> bool:
        """Run the flow unless the run is already built. Returns True if it ran."""
        self.generate_user_config()
        if self.is_built():
            self.completion.warn_if_stale(self.config)
            return False

        logging.info(f"running the flow for {self}")
        self.runtime.run(build_invocation(self.config, self.config.flow_command))
        if not self.dry_run and not self.is_built():
            logging.warning(
                f"the flow finished but {self.config.tag} still doesn't look built, "
                "the next build will run it again"
            )
        return True

    # reports

    def summarize(self, build: bool = True) -> str:
        if build:
            self.build()
        self.require_built()

        logging.info(f"collecting stats for {self}")
        content = "".join(self.helper.report(flag) for flag in REPORT_FLAGS)
        summary_file = self.config.summary_file
        if not self.dry_run:
            with open(summary_file, "w") as fh:
                fh.write(content)
        print(content, end="")
        logging.info(f"Stored in {summary_file}")
        return summary_file

    def render(self, build: bool = True) -> List[str]:
        if build:
            self.build()
        self.require_built()

        logging.info(f"rendering the GDS of {self}")
        self.helper.create_png()
        images = sorted(glob.glob(os.path.join(self.config.workdir, "gds_render*")))
        for image in images:
            logging.info(image)
        return images

    # interactive

    def prepare_x11(self):
        """Create the X authority file before it is bound into a container.

        Docker would create a missing bind source as a root-owned directory.
        """
        xauth = self.config.xauth
        if os.path.isdir(xauth):
            self.precondition_failed(f"{xauth} is a directory, remove it first")
        elif not os.path.exists(xauth):
            if self.dry_run:
                logging.info(f"would create {xauth}")
            else:
                open(xauth, "a").close()
        if not os.path.exists(self.config.xsock):
            logging.warning(f"{self.config.xsock} not found, GUI tools will not open")

    def interactive(self):
        self.fetch_helper()
        self.prepare_x11()
        if self.dry_run:
            logging.info(f"would merge X authority into {self.config.xauth}")
        else:
            merge_xauth(self.config, self.runner, self.environ.get("DISPLAY", ""))
        logging.info(f"project is available under {self.config.src_workdir}")
        self.runtime.run(build_invocation(self.config, interactive=True))

    def final_gds_files(self) -> List[str]:
        return sorted(
            glob.glob(os.path.join(self.config.run_dir, "results/final/gds/*.gds"))
        )

    def view_cells(self):
        self.require_built()
        gds_files = self.final_gds_files()
        if not gds_files:
            self.precondition_failed(f"no final GDS found in {self.config.run_dir}")

        command = ["klayout"]
        layer_props = os.path.join(self.config.workdir, ".klayout-cellfocused.lyp")
        if os.path.exists(layer_props):
            command += ["-l", self.config.container_path(layer_props)]
        else:
            logging.debug(f"{layer_props} not found, using default layer properties")
        command += [self.config.container_path(gds) for gds in gds_files]
        self.prepare_x11()
        self.runtime.run(build_invocation(self.config, command, gui=True))

    def latest_database(self) -> str:
        databases = sorted(
            glob.glob(os.path.join(self.config.run_dir, "**", "*.odb"), recursive=True)
        )
        if not databases:
            self.precondition_failed(
                f"no .odb database found in {self.config.run_dir}"
            )
            return os.path.join(self.config.run_dir, "*.odb")
        return max(databases, key=os.path.getmtime)

    def view_db(self):
        self.require_built()
        database = self.latest_database()
        logging.info(f"opening {database}")

        script = os.path.join(self.config.run_dir, "viewlatestdb.tcl")
        content = chevron.render(
            load_template("viewlatestdb.tcl.mustache"),
            {"db": self.config.container_path(database)},
        )
        if self.dry_run:
            logging.info(f"would write {script}:\n{content}")
        else:
            with open(script, "w") as fh:
                fh.write(content)

        command = ["openroad", self.config.container_path(script)]
        self.prepare_x11()
        self.runtime.run(build_invocation(self.config, command, gui=True))

    # cleanup

    def clean(self) -> List[str]:
        """Delete the marker, the rendered image and the summary of this run."""
        removed = []
        for path in self.completion.clean_paths(self.config) + [
            self.config.render_image,
            self.config.summary_file,
        ]:
            if not os.path.exists(path):
                continue
            if self.dry_run:
                logging.info(f"would remove {path}")
            else:
                logging.info(f"removing {path}")
                os.remove(path)
            removed.append(path)
        return removed

    def clean_all(self):
        run_dir = self.config.run_dir
        if not os.path.isdir(run_dir):
            self.precondition_failed(f"{run_dir} doesn't exist")
            return
        if self.dry_run:
            logging.info(f"would remove {run_dir}")
            return
        logging.info(f"removing {run_dir}")
        shutil.rmtree(run_dir)

    # status

    def run_state(self, config: Optional[RunConfiguration] = None) -> RunState:
        config = config or self.config
        if not self.completion.is_complete(config):
            return "not built"
        if os.path.exists(config.summary_file):
            return "summarized"
        return "built"

    def list_runs(self) -> List[Tuple[str, RunState]]:
        if not os.path.isdir(self.config.runs_dir):
            return []
        runs = []
        for tag in sorted(os.listdir(self.config.runs_dir)):
            if os.path.isdir(os.path.join(self.config.runs_dir, tag)):
                runs.append((tag, self.run_state(self.config.with_tag(tag))))
        return runs
