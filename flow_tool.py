#!/usr/bin/env python3
import argparse
import datetime
import logging
import os
import sys

from config_utils import ConfigFileError
from flow_errors import ExternalProcessError, FlowError
from flow_logging import setup_logging
from flow_runner import FlowRunner
from process_runner import DryRunRunner, SubprocessRunner
from run_config import RunConfiguration

# command name, make-style aliases, help, takes a run tag
COMMANDS = [
    ("fetch-helper", ["tt"], "clone the Tiny Tapeout tools and install reqs", False),
    ("gen-config", ["userconfig"], "generate src/user_config.tcl", False),
    ("build", ["gds"], "go through the entire flow", True),
    ("info", [], "build and print some stats on the run", True),
    ("render", ["png"], "build and generate an image of the GDS", True),
    ("interactive", [], "launch a shell into OpenLane, project under /work", False),
    ("view-cells", ["klayout_cells"], "show the generated GDS in klayout", True),
    ("view-db", ["show_latestdb"], "run openroad GUI with the latest db", True),
    ("clean", [], "delete the DRC report, stats and image of a run", True),
    ("clean-all", ["veryclean"], "delete the whole output of a run", True),
    ("status", [], "list the runs and their state", False),
]

ALIASES = {alias: name for name, aliases, _, _ in COMMANDS for alias in aliases}


def get_parser():
    parser = argparse.ArgumentParser(
        description="OpenLane flow runner",
        epilog="The run tag defaults to $FLOW_RUN_TAG or runMMDD (current date).",
    )
    parser.add_argument(
        "--workdir", help="project directory with src/ and info.yaml (default: .)"
    )
    parser.add_argument(
        "--config", help="settings file (default: flow_config.yaml or .json)"
    )
    parser.add_argument(
        "--debug",
        help="debug logging",
        action="store_const",
        dest="loglevel",
        const=logging.DEBUG,
        default=logging.INFO,
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        help="print the commands instead of running them",
        action="store_true",
    )

    subparsers = parser.add_subparsers(
        dest="command", required=True, help="Available commands"
    )
    for name, aliases, help_text, takes_tag in COMMANDS:
        sub = subparsers.add_parser(name, aliases=aliases, help=help_text)
        if takes_tag:
            sub.add_argument("tag", nargs="?", help="run tag")
        if name in ("info", "render"):
            sub.add_argument(
                "--no-build",
                help="fail instead of building when the run hasn't been built",
                action="store_false",
                dest="build",
            )

    return parser


def run_command(flow: FlowRunner, args) -> None:
    command = ALIASES.get(args.command, args.command)

    if command == "fetch-helper":
        flow.fetch_helper()
    elif command == "gen-config":
        flow.generate_user_config()
    elif command == "build":
        flow.build()
    elif command == "info":
        flow.summarize(build=args.build)
    elif command == "render":
        flow.render(build=args.build)
    elif command == "interactive":
        flow.interactive()
    elif command == "view-cells":
        flow.view_cells()
    elif command == "view-db":
        flow.view_db()
    elif command == "clean":
        flow.clean()
    elif command == "clean-all":
        flow.clean_all()
    elif command == "status":
        print_status(flow)


def print_status(flow: FlowRunner) -> None:
    runs = flow.list_runs()
    if not runs:
        print(f"No runs in {flow.config.runs_dir}")
        return
    print("| Run tag | State |")
    print("|---------|-------|")
    for tag, state in runs:
        current = " (current)" if tag == flow.config.tag else ""
        print(f"| {tag}{current} | {state} |")


def main(argv=None, environ=None):
    args = get_parser().parse_args(argv)
    setup_logging(args.loglevel)
    environ = os.environ if environ is None else environ

    try:
        config = RunConfiguration.resolve(
            environ,
            os.getcwd(),
            datetime.date.today(),
            workdir=args.workdir,
            tag=getattr(args, "tag", None),
            config_file=args.config,
        )
        for key, source in sorted(config.sources.items()):
            logging.debug(f"{key} from {source}")

        runner = DryRunRunner() if args.dry_run else SubprocessRunner()
        flow = FlowRunner(config, runner, dry_run=args.dry_run, environ=environ)
        run_command(flow, args)
    except ExternalProcessError as e:
        logging.error(str(e))
        sys.exit(e.returncode if e.returncode > 0 else 1)
    except ConfigFileError as e:
        logging.error(f"configuration error: {e}")
        sys.exit(2)
    except FlowError as e:
        logging.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.error("interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
