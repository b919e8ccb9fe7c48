"""Tests for the voxrelay command line."""

import json

import pytest
import yaml

from voxrelay.cli import build_parser, main


class TestCli:

    def test_init_writes_template(self, tmp_path, capsys):
        output = tmp_path / "relay.yaml"
        main(["init", "--output", str(output)])

        data = yaml.safe_load(output.read_text())
        assert data["server"]["call_path"] == "/call"
        assert f"Wrote {output}" in capsys.readouterr().out

    def test_init_fills_public_url(self, tmp_path):
        output = tmp_path / "relay.yaml"
        main(["init", "--output", str(output), "--public-url", "https://abc.ngrok.app"])
        data = yaml.safe_load(output.read_text())
        assert data["server"]["public_url"] == "https://abc.ngrok.app"

    def test_init_refuses_to_overwrite(self, tmp_path):
        output = tmp_path / "relay.yaml"
        output.write_text("keep me")
        with pytest.raises(SystemExit):
            main(["init", "--output", str(output)])
        assert output.read_text() == "keep me"

    def test_init_force(self, tmp_path):
        output = tmp_path / "relay.yaml"
        output.write_text("old")
        main(["init", "--output", str(output), "--force"])
        assert output.read_text().startswith("# VoxRelay Configuration")

    def test_tools_json(self, capsys):
        main(["tools", "--json"])
        schemas = json.loads(capsys.readouterr().out)
        assert "get_weather_from_coords" in [s["name"] for s in schemas]

    def test_tools_table(self, capsys):
        main(["tools"])
        out = capsys.readouterr().out
        assert "get_weather_from_coords" in out
        assert "Total:" in out

    def test_run_missing_config(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["run", "--config", str(tmp_path / "missing.yaml")])

    def test_run_arguments(self):
        args = build_parser().parse_args(["run", "-c", "relay.yaml", "--port", "9000"])
        assert args.config == "relay.yaml"
        assert args.port == 9000
        assert args.host is None

    def test_no_command_prints_help(self, capsys):
        main([])
        assert "usage" in capsys.readouterr().out.lower()
