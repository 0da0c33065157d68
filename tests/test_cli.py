"""
Tests for the command-line entry point.
"""
import pytest

from swapstudio import cli


def test_swap_arguments():
    args = cli.build_parser().parse_args(["swap", "me.jpg", "https://cdn.test/style.png", "-o", "out.jpg"])
    assert (args.command, args.source, args.target, args.out) == ("swap", "me.jpg", "https://cdn.test/style.png", "out.jpg")


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_swap_refuses_when_not_configured(monkeypatch):
    monkeypatch.setattr(cli.settings, "LIGHTX_API_KEY", "short")
    assert cli.main(["swap", "a.jpg", "b.jpg"]) == 2


def test_swap_runs_a_job(monkeypatch, capsys):
    seen = {}

    async def fake_perform(self, source, target):
        seen["sources"] = (source, target)
        return "https://cdn.test/result.jpg"

    monkeypatch.setattr(cli.FaceSwapClient, "perform_face_swap", fake_perform)
    assert cli.main(["swap", "a.jpg", "https://cdn.test/b.png"]) == 0

    source, target = seen["sources"]
    assert type(source).__name__ == "LocalPath"
    assert type(target).__name__ == "RemoteUrl"
    assert "https://cdn.test/result.jpg" in capsys.readouterr().out
