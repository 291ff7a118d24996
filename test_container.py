import dataclasses
import os

import pytest

import container
from container import ContainerRuntime, build_invocation, merge_xauth
from flow_errors import MissingDependencyError


class TestInvocation:
    def test_build_command(self, config, workdir):
        args = build_invocation(config, config.flow_command).to_args()
        assert args[:3] == ["docker", "run", "--rm"]
        assert "-it" not in args
        assert args[-9:] == ["efabless/openlane"] + config.flow_command

        pairs = list(zip(args, args[1:]))
        assert ("-v", f"{config.openlane_root}:/openlane") in pairs
        assert ("-v", f"{config.pdk_root}:{config.pdk_root}") in pairs
        assert ("-v", f"{workdir}:/work") in pairs
        assert ("-e", f"PDK_ROOT={config.pdk_root}") in pairs
        assert ("-e", "PDK=sky130A") in pairs
        assert ("-e", f"XAUTHORITY={config.xauth}") in pairs
        assert ("-u", "1000:1000") in pairs
        assert ("--env", "DISPLAY") in pairs
        assert "--net=host" in args

    def test_flowrunner_is_a_single_argument(self, config):
        args = build_invocation(config).to_args()
        assert (
            "FLOWRUNNER=./flow.tcl -overwrite -design /work/src -run_path /work/runs "
            "-tag run0314"
        ) in args

    def test_build_does_not_mount_x11(self, config):
        args = build_invocation(config, config.flow_command).to_args()
        assert f"{config.xsock}:{config.xsock}" not in args
        assert f"{config.xauth}:{config.xauth}" not in args

    def test_gui_mounts_x11(self, config):
        args = build_invocation(config, ["klayout"], gui=True).to_args()
        pairs = list(zip(args, args[1:]))
        assert ("-v", f"{config.xsock}:{config.xsock}") in pairs
        assert ("-v", f"{config.xauth}:{config.xauth}") in pairs

    def test_interactive(self, config):
        args = build_invocation(config, interactive=True).to_args()
        assert args[:4] == ["docker", "run", "--rm", "-it"]
        assert args[-1] == "efabless/openlane"
        assert f"{config.xauth}:{config.xauth}" in args

    def test_podman(self, config):
        config = dataclasses.replace(config, engine="podman")
        assert build_invocation(config).to_args()[0] == "podman"


class TestRuntime:
    def test_missing_engine(self, monkeypatch, runner):
        monkeypatch.setattr(container.shutil, "which", lambda name: None)
        runtime = ContainerRuntime("docker", runner)
        with pytest.raises(MissingDependencyError, match="docker not found"):
            runtime.ensure_available()

    def test_run(self, config, runner, docker_installed):
        ContainerRuntime("docker", runner).run(build_invocation(config, ["true"]))
        assert len(runner.calls) == 1
        assert runner.calls[0][-1] == "true"


class TestXauth:
    def test_merge(self, config, runner, docker_installed, tmp_path):
        xauth = tmp_path / "docker.xauth"
        xauth.write_bytes(b"")
        config = dataclasses.replace(config, xauth=str(xauth))
        runner.outputs["nlist"] = b"0100 0004 7f000001 0001 30 0012 4d49542d4d41474943\n"

        merge_xauth(config, runner, ":0")

        assert runner.calls[0] == ["xauth", "nlist", ":0"]
        assert runner.calls[1] == ["xauth", "-f", str(xauth), "nmerge", "-"]
        assert runner.inputs[1].startswith(b"ffff 0004 7f000001")
        assert os.stat(xauth).st_mode & 0o777 == 0o755

    def test_no_display(self, config, runner, docker_installed):
        merge_xauth(config, runner, "")
        assert runner.calls == []

    def test_no_cookie(self, config, runner, docker_installed):
        merge_xauth(config, runner, ":0")
        assert len(runner.calls) == 1
